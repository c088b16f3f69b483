"""Fixed names and defaults shared by the plan resolver."""

WORKSPACE_DIRNAME = ".bookplan"
THEMES_DIRNAME = "themes"
PACKAGE_STORE_DIRNAME = "node_modules"
LOCAL_MIRROR_DIRNAME = ".local"

MANIFEST_FILENAME = "publication.json"
TOC_FILENAME = "index.html"
TOC_TITLE = "Table of Contents"
COVER_HTML_FILENAME = "cover.html"
COVER_HTML_IMAGE_ALT = "Cover image"

EPUB_OUTPUT_VERSION = "3.0"
DEFAULT_OUTPUT_FILENAME = "output.pdf"

DEFAULT_TIMEOUT_MS = 120_000
DEFAULT_BASE = "/bookplan"
DEFAULT_SERVER_PORT = 13000
CONTAINER_IMAGE = "ghcr.io/bookplan/renderer:latest"

TEMPORARY_PREFIX_STEM = ".bp-"

PROJECT_FILENAMES = (
    "bookplan.config.json",
    "bookplan.config.yaml",
    "bookplan.config.yml",
)

DEFAULT_ASSET_EXTENSIONS = [
    "png",
    "jpg",
    "jpeg",
    "svg",
    "gif",
    "webp",
    "apng",
    "ttf",
    "otf",
    "woff",
    "woff2",
]
