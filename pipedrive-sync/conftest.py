"""Pytest configuration. Puts the app directory on sys.path for imports like `import pipedrive_client`."""
import sys
from pathlib import Path

_app_dir: Path = Path(__file__).resolve().parent
if str(_app_dir) not in sys.path:
    sys.path.insert(0, str(_app_dir))
