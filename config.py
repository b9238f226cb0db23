import tomllib
import shutil
import os
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv

CONFIG_DIR = Path(os.getenv("LINGOCARDS_HOME", Path.home() / ".lingocards"))
CONFIG_PATH = Path(os.getenv("LINGOCARDS_CONFIG", CONFIG_DIR / "config.toml"))
PROJECT_CONFIG_EXAMPLE = Path(__file__).parent / "config.toml"


def _env_bool(name: str, default: Any) -> bool:
    return os.getenv(name, str(default)).lower() in {"1", "true", "yes", "y"}


def load_config() -> Dict[str, Any]:
    """Load config from ~/.lingocards/config.toml, copy example if missing, apply .env overrides."""
    load_dotenv()  # .env may carry LINGOCARDS_* overrides for local runs
    if not CONFIG_PATH.exists():
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy(PROJECT_CONFIG_EXAMPLE, CONFIG_PATH)
    with open(CONFIG_PATH, "rb") as f:
        config = tomllib.load(f)

    app_cfg = config.get("app", {})
    config["app"] = {
        "name": os.getenv("LINGOCARDS_APP_NAME", app_cfg.get("name", "lingocards")),
        "timezone": os.getenv("LINGOCARDS_TIMEZONE", app_cfg.get("timezone", "UTC")),
    }
    db_cfg = config.get("database", {})
    config["database"] = {
        "path": os.getenv("LINGOCARDS_DB_PATH", db_cfg.get("path", str(CONFIG_DIR / "lingocards.db"))),
    }
    logging_cfg = config.get("logging", {})
    config["logging"] = {
        "level": os.getenv("LINGOCARDS_LOG_LEVEL", logging_cfg.get("level", "INFO")).upper(),
    }
    auth_cfg = config.get("auth", {})
    config["auth"] = {
        "secret": os.getenv("LINGOCARDS_AUTH_SECRET", auth_cfg.get("secret", "")),
        "job_key": os.getenv("LINGOCARDS_JOB_KEY", auth_cfg.get("job_key", "")),
    }
    plan_cfg = config.get("daily_plan", {})
    config["daily_plan"] = {
        "default_target": int(os.getenv("LINGOCARDS_DAILY_TARGET", plan_cfg.get("default_target", 20))),
    }
    exam_cfg = config.get("exam", {})
    config["exam"] = {
        "min_page_size": int(exam_cfg.get("min_page_size", 10)),
        "speaking_pass_score": int(os.getenv(
            "LINGOCARDS_SPEAKING_PASS_SCORE", exam_cfg.get("speaking_pass_score", 80)
        )),
    }
    stt_cfg = config.get("stt", {})
    config["stt"] = {
        "provider": os.getenv("LINGOCARDS_STT_PROVIDER", stt_cfg.get("provider", "remote")).lower(),
        "url": os.getenv("LINGOCARDS_STT_URL", stt_cfg.get("url", "")),
        "timeout": float(os.getenv("LINGOCARDS_STT_TIMEOUT", stt_cfg.get("timeout", 30))),
        "model": stt_cfg.get("model", "base"),
        "language": stt_cfg.get("language"),
        "device": stt_cfg.get("device", "cpu"),
        "compute_type": stt_cfg.get("compute_type", "int8"),
        "vad_filter": _env_bool("LINGOCARDS_STT_VAD_FILTER", stt_cfg.get("vad_filter", True)),
    }
    tts_cfg = config.get("tts", {})
    config["tts"] = {
        "url": os.getenv("LINGOCARDS_TTS_URL", tts_cfg.get("url", "")),
        "timeout": float(os.getenv("LINGOCARDS_TTS_TIMEOUT", tts_cfg.get("timeout", 30))),
        "format": tts_cfg.get("format", "mp3"),
        "locale": tts_cfg.get("locale", "en-US"),
    }
    return config


def get_config_value(section: str, key: str, default: Optional[Any] = None) -> Any:
    """Get nested config value, e.g., get_config_value('stt', 'url')."""
    config = load_config()
    value = config.get(section, {}).get(key, default)
    return value
