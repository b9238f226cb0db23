# Routes package __init__.py - re-exports routers for main.py convenience
from .sets import router as sets_router
from .learn import router as learn_router
from .daily_plans import router as daily_plans_router
from .jobs import router as jobs_router
from .exams import router as exams_router
from .voice import router as voice_router

__all__ = [
    'sets_router', 'learn_router', 'daily_plans_router', 'jobs_router', 'exams_router', 'voice_router',
]
