"""
Lancement local du serveur API: python -m rimaqr [--host H] [--port P] [--reload] [--log-level L]
Valeurs par défaut lues dans l'environnement: HOST, PORT, UVICORN_RELOAD, LOG_LEVEL.
"""
import argparse
import os

import uvicorn


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="rimaqr", description="API RimaQR: commandes, droits et galerie")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 8000)))
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
    )
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "info"))
    args = parser.parse_args(argv)
    uvicorn.run("rimaqr.asgi:app", host=args.host, port=args.port, reload=args.reload, log_level=args.log_level)


if __name__ == "__main__":
    main()
