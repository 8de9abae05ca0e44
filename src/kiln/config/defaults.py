"""
kiln.config.defaults - Default configuration values
"""

CONFIG_FILENAME = ".kiln.toml"

ENV_PREFIX = "KILN_"

KNOWN_FEATURES = ("clean",)

DEFAULT_CONFIG = {
    "mode": "development",
    "features": [],
    "entry": {
        "path": "src/main.js",
    },
    "output": {
        "path": "dist",
        "filename": "bundle.js",
        "public_path": "/",
    },
    "dev_server": {
        "content_base": "public",
        "host": "127.0.0.1",
        "port": 8080,
        "hot_reload": True,
        "poll_interval": 0.1,
        "debounce": 0.1,
    },
    "resolve": {
        "extensions": [".js", ".mjs"],
        "module_dirs": ["node_modules"],
        "alias": {},
    },
}
