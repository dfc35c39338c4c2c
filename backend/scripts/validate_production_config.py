from __future__ import annotations

import os
import sys
from pathlib import Path


def main() -> int:
    os.environ.setdefault("APP_ENV", "production")
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))
    try:
        from gateway.core.settings import Settings
        from gateway.providers.registry import load_providers

        settings = Settings()
        providers = load_providers(settings.providers_config_path)
    except Exception as exc:  # noqa: BLE001
        print(str(exc))
        return 1
    print(f"CONFIG VALID ({len(providers)} providers)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
