from __future__ import annotations

import argparse
import json
import sys
from datetime import date

from adtrack.app.runner import open_app
from adtrack.features.dedupe.service import build_dedupe_key
from adtrack.features.identity.service import build_identity_key
from adtrack.features.page_keys.service import build_page_key

DEFAULT_CONFIG = "config/adtrack.yaml"


def _keys(args: argparse.Namespace) -> dict[str, str | None]:
    page_key = build_page_key(page_type=args.page_type, page_url=args.page_url, fallback=args.fallback)
    identity_key = build_identity_key(user_id=args.user_id, session_id=args.session_id)
    dedupe_key = build_dedupe_key(
        type=args.type,
        ad_id=args.ad_id,
        page_key=page_key,
        identity_key=identity_key,
        event_id=args.event_id,
    )
    return {"page_key": page_key, "identity_key": identity_key, "dedupe_key": dedupe_key}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="adtrack")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_keys = sub.add_parser("keys", help="Print page, identity and dedupe keys")
    p_keys.add_argument("--type", default=None)
    p_keys.add_argument("--ad-id", default=None)
    p_keys.add_argument("--page-type", default=None)
    p_keys.add_argument("--page-url", default=None)
    p_keys.add_argument("--fallback", default="")
    p_keys.add_argument("--user-id", default=None)
    p_keys.add_argument("--session-id", default=None)
    p_keys.add_argument("--event-id", default=None)

    p_stats = sub.add_parser("stats", help="Impressions, clicks and CTR for an ad")
    p_stats.add_argument("--config", default=DEFAULT_CONFIG)
    p_stats.add_argument("--ad-id", required=True)

    p_agg = sub.add_parser("aggregate", help="Roll a UTC day into ad_stats_daily")
    p_agg.add_argument("--config", default=DEFAULT_CONFIG)
    p_agg.add_argument("--day", type=date.fromisoformat, default=None, help="YYYY-MM-DD")

    p_purge = sub.add_parser("purge", help="Delete events past the retention window")
    p_purge.add_argument("--config", default=DEFAULT_CONFIG)

    args = parser.parse_args(argv)

    if args.cmd == "keys":
        print(json.dumps(_keys(args), sort_keys=True))
        return 0

    with open_app(args.config) as app:
        if args.cmd == "stats":
            print(json.dumps(app.stats.ad_stats(args.ad_id).as_dict(), sort_keys=True))
            return 0
        if args.cmd == "aggregate":
            print(f"ads_processed={app.stats.aggregate_day(args.day)}")
            return 0
        if args.cmd == "purge":
            print(f"deleted={app.purge_expired()}")
            return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
