"""Constants for workspace-snapshots."""

# Store capacity is expressed in decimal megabytes
BYTES_PER_MB = 1_000_000

# Default limits
DEFAULT_MAX_SNAPSHOTS = 50
DEFAULT_MAX_MEMORY_MB = 100
DEFAULT_CLEANUP_THRESHOLD = 0.8
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MIN_MAX_FILE_SIZE = 1024
DEFAULT_PREVIEW_THRESHOLD = 10

# Configuration file looked up in the workspace root
CONFIG_FILE = ".wsnap.yaml"

# Environment variable overrides -> dotted settings path
ENV_OVERRIDES = {
    "WSNAP_MAX_SNAPSHOTS": "storage.max_snapshots",
    "WSNAP_MAX_MEMORY_MB": "storage.max_memory_mb",
    "WSNAP_CLEANUP_THRESHOLD": "storage.cleanup_threshold",
    "WSNAP_MAX_FILE_SIZE": "file_handling.max_file_size",
    "WSNAP_BINARY_FILE_HANDLING": "file_handling.binary_file_handling",
}

# Default patterns to always exclude (gitignore syntax)
DEFAULT_EXCLUSIONS = [
    # Dependencies
    "node_modules/",
    ".venv/",
    "venv/",
    "vendor/",
    "bower_components/",

    # Build artifacts
    "dist/",
    "build/",
    "target/",
    "out/",
    ".next/",
    ".nuxt/",
    "__pycache__/",
    "*.pyc",

    # Version control
    ".git/",
    ".svn/",
    ".hg/",
    ".bzr/",

    # IDE and editors
    ".vscode/",
    ".idea/",
    "*.swp",
    "*.swo",
    "*~",

    # OS files
    ".DS_Store",
    "Thumbs.db",

    # Temporary files
    "*.tmp",
    "*.temp",
    "*.log",
    "*.cache",
    "*.pid",
    "*.pid.lock",

    # Environment files
    ".env",
    ".env.*",

    # Coverage reports
    "coverage/",
    ".nyc_output/",
    "htmlcov/",
    ".pytest_cache/",
]

# Extensions treated as binary (lower-case, including the dot)
DEFAULT_BINARY_EXTENSIONS = [
    # Images
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".webp", ".ico", ".icns", ".svg",
    # Audio / video
    ".mp3", ".wav", ".flac", ".ogg", ".m4a", ".mp4", ".avi", ".mkv", ".mov", ".wmv", ".flv",
    # Executables and libraries
    ".exe", ".dll", ".so", ".dylib", ".app",
    # Archives
    ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2",
    # Documents
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    # Fonts
    ".woff", ".woff2", ".ttf", ".otf", ".eot",
]
