"""
Global settings for Course Log.
Instructor console + read-only public calendar, dark sidebar with an amber accent.
"""

from pathlib import Path

# Page
PAGE_TITLE = "Course Log"
PAGE_ICON = "🗓️"

# Sidebar
SIDEBAR_HEADER = "Course Log & Problem Bank"

# Palette
THEME_PRIMARY = "#F59E0B"        # Amber
THEME_PRIMARY_HOVER = "#D97706"  # Darker amber on hover
THEME_BG_PAGE = "#F9F9F9"        # Page background
THEME_SIDEBAR_BG = "#111111"     # Deep black sidebar
THEME_TEXT = "#000000"
THEME_CARD_BG = "#FFFFFF"
THEME_CARD_SHADOW = "0 2px 8px rgba(0,0,0,0.06)"

# Log-item kinds, in the order they appear in forms.
LOG_ITEM_KINDS = (
    "Lecture",
    "Discussion",
    "Lab",
    "Homework",
    "Quiz",
    "Midterm",
    "Final",
    "Project",
    "Other",
)

# Column order of the public calendar. Final and Project are not columns.
CALENDAR_KIND_COLUMNS = ("Lecture", "Discussion", "Lab", "Homework", "Quiz", "Midterm", "Other")

# Public link allow list
FIRST_PARTY_LINK_DOMAIN = "notes.lnjng.com"
LECTURE_LINK_DOMAIN = "drive.google.com"

# Translation cache + remote batch call
SOURCE_LANG = "zh"
TARGET_LANG = "en"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_API_KEY_ENV = "OPENROUTER_API_KEY"
TRANSLATION_MODEL = "google/gemini-2.5-flash"
TRANSLATION_TEMPERATURE = 0.1
TRANSLATION_MAX_ATTEMPTS = 3
TRANSLATION_RETRY_BACKOFF_S = 1.0
TRANSLATION_TIMEOUT_S = 30.0

# Problem screenshots
PROJECT_ROOT = Path(__file__).resolve().parents[1]
UPLOADS_DIR = PROJECT_ROOT / "data" / "uploads"
