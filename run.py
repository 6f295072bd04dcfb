from __future__ import annotations

from core.app import create_app
from core.config import AppConfig, setup_logging


def main() -> None:
    cfg = AppConfig.from_env()
    setup_logging(cfg)

    app = create_app(cfg)
    app.run(host=cfg.host, port=cfg.port, debug=cfg.debug, threaded=True)


if __name__ == "__main__":
    main()
