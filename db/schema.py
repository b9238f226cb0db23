# SQL schema for LingoCards database

SCHEMA_VERSION = 4

SCHEMA_SQL = """
-- Users (identity is resolved upstream; user_token is the opaque id)
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_token TEXT UNIQUE NOT NULL,
    username TEXT,
    daily_active INTEGER NOT NULL DEFAULT 0,
    daily_target INTEGER NOT NULL DEFAULT 20 CHECK(daily_target >= 1),
    daily_set_id INTEGER,
    default_set_id INTEGER,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

-- Flashcard sets
CREATE TABLE IF NOT EXISTS flashcard_sets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_token TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    deleted_at TEXT
);

-- Flashcards (choices stored as a JSON array)
CREATE TABLE IF NOT EXISTS flashcards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    set_id INTEGER NOT NULL,
    front TEXT NOT NULL,
    back TEXT NOT NULL,
    choices TEXT NOT NULL DEFAULT '[]',
    seq INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT,
    FOREIGN KEY (set_id) REFERENCES flashcard_sets (id) ON DELETE CASCADE
);

-- Per (user, card) Leitner state
CREATE TABLE IF NOT EXISTS user_flashcard_srs (
    user_token TEXT NOT NULL,
    card_id INTEGER NOT NULL,
    box INTEGER NOT NULL DEFAULT 1 CHECK(box BETWEEN 1 AND 5),
    streak INTEGER NOT NULL DEFAULT 0,
    last_review_at TEXT,
    next_review_at TEXT,
    total_reviews INTEGER NOT NULL DEFAULT 0,
    last_grade INTEGER CHECK(last_grade BETWEEN 0 AND 5),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (user_token, card_id),
    FOREIGN KEY (card_id) REFERENCES flashcards (id) ON DELETE CASCADE
);

-- Review log
CREATE TABLE IF NOT EXISTS review_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_token TEXT NOT NULL,
    card_id INTEGER NOT NULL,
    source TEXT NOT NULL CHECK(source IN ('PRACTICE', 'EXAM', 'DAILY')),
    grade INTEGER NOT NULL CHECK(grade BETWEEN 0 AND 5),
    is_correct TEXT NOT NULL CHECK(is_correct IN ('Y', 'N')),
    answer_detail TEXT NOT NULL DEFAULT '{}',
    ts TEXT NOT NULL,
    FOREIGN KEY (card_id) REFERENCES flashcards (id) ON DELETE CASCADE
);

-- Daily plans, one per (user, date); cards kept in plan order
CREATE TABLE IF NOT EXISTS daily_plans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_token TEXT NOT NULL,
    plan_date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_token, plan_date)
);

-- One row per date the batch job has run
CREATE TABLE IF NOT EXISTS daily_plan_runs (
    plan_date TEXT PRIMARY KEY,
    users_planned INTEGER NOT NULL DEFAULT 0,
    cards_planned INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS daily_plan_cards (
    plan_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    card_id INTEGER NOT NULL,
    PRIMARY KEY (plan_id, position),
    UNIQUE (plan_id, card_id),
    FOREIGN KEY (plan_id) REFERENCES daily_plans (id) ON DELETE CASCADE
);

-- Exam sessions
CREATE TABLE IF NOT EXISTS exam_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_token TEXT NOT NULL,
    mode TEXT NOT NULL DEFAULT 'MCQ' CHECK(mode IN ('MCQ', 'TYPING', 'LISTENING', 'SPEAKING', 'MIXED')),
    source_set_id INTEGER,
    plan_id INTEGER,
    total_questions INTEGER NOT NULL,
    time_limit_sec INTEGER,
    status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK(status IN ('ACTIVE', 'SUBMITTED', 'EXPIRED', 'CANCELLED')),
    started_at TEXT NOT NULL,
    expires_at TEXT,
    submitted_at TEXT,
    score_total INTEGER,
    score_max INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

-- Frozen question copies, independent of later card edits
CREATE TABLE IF NOT EXISTS exam_questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    seq INTEGER NOT NULL,
    card_id INTEGER NOT NULL,
    question_type TEXT NOT NULL,
    front_snapshot TEXT NOT NULL,
    back_snapshot TEXT NOT NULL,
    choices_snapshot TEXT NOT NULL DEFAULT '[]',
    score_max INTEGER NOT NULL DEFAULT 1,
    UNIQUE (session_id, seq),
    FOREIGN KEY (session_id) REFERENCES exam_sessions (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS exam_answers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    question_id INTEGER NOT NULL,
    user_token TEXT NOT NULL,
    selected_choice INTEGER,
    typed_text TEXT,
    recognized_text TEXT,
    pronunciation_score INTEGER,
    is_correct TEXT NOT NULL CHECK(is_correct IN ('Y', 'N')),
    score_awarded INTEGER NOT NULL DEFAULT 0,
    answered_at TEXT NOT NULL,
    detail TEXT NOT NULL DEFAULT '{}',
    UNIQUE (session_id, question_id),
    FOREIGN KEY (session_id) REFERENCES exam_sessions (id) ON DELETE CASCADE,
    FOREIGN KEY (question_id) REFERENCES exam_questions (id) ON DELETE CASCADE
);

-- Pronunciation attempts
CREATE TABLE IF NOT EXISTS pronunciation_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_token TEXT NOT NULL,
    source_text TEXT NOT NULL,
    stt_text TEXT NOT NULL,
    score INTEGER NOT NULL,
    wer REAL NOT NULL,
    media_type TEXT,
    created_at TEXT NOT NULL
);

-- Synthesized speech cache
CREATE TABLE IF NOT EXISTS tts_cache (
    cache_key TEXT PRIMARY KEY,
    text TEXT NOT NULL,
    audio_url TEXT NOT NULL,
    storage_key TEXT,
    hit_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    last_accessed_at TEXT NOT NULL
);
"""

# Indexes for performance
INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_users_daily_active ON users (daily_active);
CREATE INDEX IF NOT EXISTS idx_sets_owner ON flashcard_sets (owner_token);
CREATE INDEX IF NOT EXISTS idx_flashcards_set_seq ON flashcards (set_id, seq, id);
CREATE INDEX IF NOT EXISTS idx_flashcards_deleted ON flashcards (deleted_at);
CREATE INDEX IF NOT EXISTS idx_srs_user_next ON user_flashcard_srs (user_token, next_review_at);
CREATE INDEX IF NOT EXISTS idx_review_log_user_card ON review_log (user_token, card_id);
CREATE INDEX IF NOT EXISTS idx_review_log_ts ON review_log (ts);
CREATE INDEX IF NOT EXISTS idx_daily_plans_date ON daily_plans (plan_date);
CREATE INDEX IF NOT EXISTS idx_exam_sessions_user_created ON exam_sessions (user_token, created_at);
CREATE INDEX IF NOT EXISTS idx_exam_sessions_plan ON exam_sessions (plan_id);
CREATE INDEX IF NOT EXISTS idx_exam_questions_session ON exam_questions (session_id, seq);
CREATE INDEX IF NOT EXISTS idx_pronunciation_user ON pronunciation_attempts (user_token, created_at);
"""
