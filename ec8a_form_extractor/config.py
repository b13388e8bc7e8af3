"""
Central configuration for the EC 8A batch extractor.

All tunables live here so a new election (new party list, new model) is a one-file change.
"""

from __future__ import annotations

# -------------------------
# Target categories (party acronyms on the EC 8A form, in export order)
# -------------------------
TARGET_PARTIES: tuple[str, ...] = (
    "ACCORD", "AA", "AAC", "ADC", "ADP", "APC", "APGA",
    "APM", "APP", "BP", "LP", "NNPP", "NRM", "PDP",
    "PRP", "SDP", "YP", "YPP", "ZLP",
)

# -------------------------
# Extracted fields: (attribute name, export header label)
# -------------------------
ADMIN_FIELDS: tuple[tuple[str, str], ...] = (
    ("lga", "LGA"),
    ("registration_area", "REGISTRATION AREA"),
    ("polling_unit", "POLLING UNIT"),
    ("delimitation", "DELIMITATION"),
)

NUMERIC_FIELDS: tuple[tuple[str, str], ...] = (
    ("voters_on_register", "Number of Voters on the Register"),
    ("accredited_voters", "Number of Accredited Voters"),
    ("ballot_papers_issued", "Number of Ballot Papers Issued"),
    ("unused_ballot_papers", "Number of Unused Ballot Papers"),
    ("spoiled_ballot_papers", "Number of Spoiled Ballot Papers"),
    ("rejected_ballots", "Number of Rejected Ballots"),
    ("total_valid_votes", "Total Valid Votes"),
    ("total_used_ballot_papers", "Total Used Ballot Papers"),
)

IDENTITY_COLUMNS: tuple[str, str] = ("Filename", "Status")

# Numeric field summed across successful records in the batch stats.
AGGREGATE_FIELD: str = "total_valid_votes"

# -------------------------
# Scheduling
# -------------------------
MAX_CONCURRENT_EXTRACTIONS: int = 3

# -------------------------
# Gemini
# -------------------------
GEMINI_MODEL: str = "gemini-2.5-flash"
GEMINI_SUPPORTED_MODELS: tuple[str, ...] = ("gemini-2.5-flash", "gemini-2.5-pro", "gemini-3-flash", "gemini-3-pro")
GEMINI_TEMPERATURE: float = 0.1
REQUEST_TIMEOUT_S: float = 90.0

# -------------------------
# Ollama (local OpenAI-compatible backend)
# -------------------------
OLLAMA_URL: str = "http://localhost:11434"
OLLAMA_MODEL: str = "qwen3-vl:8b"
OLLAMA_TIMEOUT_S: float = 600.0

# -------------------------
# Inputs / images
# -------------------------
IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".webp", ".gif")
PDF_RENDER_DPI: int = 200

COMPRESS_MAX_SIDE: int = 2048  # px; longest side after downscale
COMPRESS_JPEG_QUALITY: int = 85

PREVIEW_MAX_SIDE: int = 256
PREVIEW_JPEG_QUALITY: int = 70

# -------------------------
# Credentials
# -------------------------
API_KEY_ENV_VARS: tuple[str, str] = ("GEMINI_API_KEY", "GOOGLE_API_KEY")
DEFAULT_ENV_FILE: str = "env.local"
