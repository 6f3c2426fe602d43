# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit the anon key together with real user data dumps. Use:
- .env (local, gitignored)

This file keeps the repo self-documenting without opening src/mr_later/config.py.
"""

ENV_VARS = {
    # App / logging
    "MRLATER_APP_NAME": "App display name (default: Mr. Later).",
    "MRLATER_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Backend
    "MRLATER_SUPABASE_URL": "Project URL of the hosted backend (falls back to SUPABASE_URL).",
    "MRLATER_SUPABASE_ANON_KEY": "Public anon key (falls back to SUPABASE_ANON_KEY).",
    "MRLATER_HTTP_TIMEOUT_SECONDS": "Per-request timeout for REST/auth/functions calls (default: 15).",
    # Deep links
    "MRLATER_APP_SCHEME": "Custom URL scheme (default: mrlater).",
    "MRLATER_OAUTH_REDIRECT_URL": "OAuth / one-time-code redirect (default: <scheme>://login).",
    # Local behaviour
    "MRLATER_TIMEZONE": "IANA zone for 'do later' day arithmetic and display (default: UTC).",
    "MRLATER_LEADERBOARD_LIMIT": "Rows shown by /board (default: 50).",
    # Paths (gitignored)
    "MRLATER_DATA_DIR": "Local data directory (default: .local/mr_later).",
    "MRLATER_SECRETS_PATH": (
        "Device secret file: refresh token, saved credential, flags (default: <data_dir>/secrets.json)."
    ),
}
