SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS etfs (
    symbol TEXT PRIMARY KEY,
    last_updated INTEGER
);

CREATE TABLE IF NOT EXISTS etf_fundamentals (
    etf TEXT PRIMARY KEY REFERENCES etfs(symbol),
    expense_ratio REAL,
    "1yr_cagr" REAL,
    "3yr_cagr" REAL,
    "5yr_cagr" REAL
);

CREATE TABLE IF NOT EXISTS etf_holdings (
    etf TEXT NOT NULL REFERENCES etfs(symbol),
    holding TEXT NOT NULL,
    weight REAL
);

CREATE INDEX IF NOT EXISTS idx_etf_holdings_etf ON etf_holdings (etf);

CREATE TABLE IF NOT EXISTS update_runs (
    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT,
    symbols_selected INTEGER,
    symbols_updated INTEGER,
    symbols_failed INTEGER,
    error_message TEXT
);
"""
