#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys

from fivewhy.core.bootstrap import build_service
from fivewhy.core.cancellation import CancellationToken
from fivewhy.core.config.loader import load_settings
from fivewhy.core.errors import FiveWhyError
from fivewhy.core.logging import configure_logging


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a 5-Why root-cause analysis for one problem statement")
    parser.add_argument("question", help="Problem statement to analyse")
    parser.add_argument("--config", default=None, help="YAML settings file (FIVEWHY_* env vars override it)")
    parser.add_argument("--session-id", default="", help="Session id (generated when omitted)")
    parser.add_argument("--user-id", default="cli", help="User id recorded with the session")
    parser.add_argument("--timeout", type=float, default=None, help="Abort the run after this many seconds")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        settings = load_settings(args.config)
        configure_logging(settings.state_path, level=settings.logging.level)
        service = build_service(settings)
        token = CancellationToken(timeout_s=args.timeout) if args.timeout else None
        session = service.five_why(args.session_id, args.user_id, args.question, token=token)
    except FiveWhyError as exc:
        print(f"error: {exc}", file=sys.stderr, flush=True)
        return 1
    print(json.dumps(session.model_dump(mode="json"), indent=2, ensure_ascii=False), flush=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
