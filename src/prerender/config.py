"""Central configuration for prerender."""

# Origin the embedded application believes it was loaded from
DEFAULT_ORIGIN = "http://localhost:8000"

# HTTP server
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Timeouts in milliseconds
BOOT_TIMEOUT = 30000
VISIT_TIMEOUT = 5000

# Extra time granted to the browser worker before it is considered wedged
WORKER_GRACE = 5000

# Build output
MANIFEST_FILE = "package.json"
INDEX_FILE = "index.html"

# Maximum number of buffered console errors per session
ERROR_BUFFER_SIZE = 100
