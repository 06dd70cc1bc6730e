"""Application-wide constants.

This module centralizes the magic numbers of the pipeline so that the
scraper, downloader, analyzer, uploader and record store agree on a single
source of truth.

Constants are organized by pipeline stage.
"""

# =============================================================================
# Scraping Configuration
# =============================================================================

# Number of hex characters kept from the sha1 of (page URL + image URL)
DETERMINISTIC_ID_LENGTH = 16

# Delay between page requests of a paginated target (seconds)
POLITE_REQUEST_DELAY_SECONDS = 0.5

# Default query parameter for "pageParam" pagination
DEFAULT_PAGE_PARAM = "page"

# Default locator when a target does not name an image selector
DEFAULT_IMAGE_SELECTOR = "img"

DEFAULT_USER_AGENT = "asset-pipeline/1.0 (+https://github.com/)"

# =============================================================================
# HTTP Timeout Configuration
# =============================================================================

# Default timeout for page and image requests (seconds)
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

# =============================================================================
# Download Configuration
# =============================================================================

# Maximum number of in-flight image downloads
DEFAULT_DOWNLOAD_CONCURRENCY = 4

# Extension used when the image URL path carries none
DEFAULT_IMAGE_EXTENSION = "jpg"

# Subdirectory of <outputDir>/<slug> holding raw downloads
RAW_SUBDIRECTORY = "raw"

# =============================================================================
# Enrichment Configuration
# =============================================================================

DEFAULT_CLASSIFIER_MODEL = "google/vit-base-patch16-224"
DEFAULT_CAPTION_MODEL = "Salesforce/blip-image-captioning-base"

# Tags kept from the classifier when the config does not say otherwise
DEFAULT_MAX_TAGS = 5

# Categories are the top-N classifier labels
MAX_AI_CATEGORIES = 3

# Token budget for generated captions
CAPTION_MAX_NEW_TOKENS = 50

# Model inference is not thread-safe across pipelines; one call at a time
DEFAULT_ENRICH_CONCURRENCY = 1

# Palette size used when searching for the dominant color
DOMINANT_COLOR_PALETTE_SIZE = 8

# Edge length images are reduced to before color analysis
COLOR_SAMPLE_SIZE = 64

# Longest side an image is reduced to before perceptual hashing
PERCEPTUAL_HASH_MAX_SIDE = 1024

# Edge length of the perceptual hash grid (16 -> 256-bit hash)
PERCEPTUAL_HASH_SIZE = 16

# =============================================================================
# Upload Configuration
# =============================================================================

DEFAULT_UPLOAD_CONCURRENCY = 3

# Part size for multipart uploads (bytes)
UPLOAD_MULTIPART_CHUNK_BYTES = 1024 * 1024

# =============================================================================
# Record Store
# =============================================================================

# Separator used when writing list fields into a single CSV cell
LIST_FIELD_SEPARATOR = " | "

# Character decoding splits list cells on
LIST_FIELD_DELIMITER = "|"

# =============================================================================
# Image Variants
# =============================================================================

# (name, max width, max height) per device class
VARIANT_TARGETS = (
    ("mobile", 1242, 2688),
    ("pad", 2048, 2732),
    ("desktop", 3840, 2160),
)

VARIANT_WEBP_QUALITY = 90
VARIANT_JPEG_QUALITY = 92

DEFAULT_VARIANTS_DIR = "data/variants"

# =============================================================================
# Dashboard
# =============================================================================

# Number of most recently updated records shown on the dashboard
DASHBOARD_RECENT_RECORDS = 25
