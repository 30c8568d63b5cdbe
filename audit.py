# audit.py: RGAA Audit command line
import argparse
import json
import sys

from control_packs.loader import CatalogError, load_catalog
from engine.logging_setup import configure_logging
from engine.run_store import CheckpointError, SessionStore
from engine.settings import get_settings
from reporting.report import report_from_session


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _banner(title: str) -> None:
    print("╔══════════════════════════════════════╗")
    print(f"║   {title:<35}║")
    print("╚══════════════════════════════════════╝")


def _load_session(store: SessionStore, session_id: str):
    session = store.load(session_id)
    if session is None:
        print(f"  ✗ Session introuvable : {session_id}", file=sys.stderr)
    return session


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="rgaaudit", description="RGAA 4.1 accessibility audit engine")
    p.add_argument("--sessions-dir", metavar="DIR",
                   help="Session checkpoint directory (default: settings)")
    p.add_argument("--catalog", metavar="FILE", help="Alternative criteria catalog JSON")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("catalog", help="Show catalog coverage")
    sub.add_parser("sessions", help="List stored audit sessions")

    s = sub.add_parser("status", help="Show progress of a stored session")
    s.add_argument("session_id")

    r = sub.add_parser("remaining", help="Print pending URLs of a session, one per line")
    r.add_argument("session_id")

    rep = sub.add_parser("report", help="Build the report JSON from a stored session")
    rep.add_argument("session_id")
    rep.add_argument("--out", metavar="FILE", help="Write the report to FILE instead of stdout")
    rep.add_argument("--pretty", action="store_true", help="Indent the JSON output")
    return p.parse_args(argv)


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------

def cmd_catalog(catalog) -> int:
    _banner("RGAA Audit · Catalog")
    print(f"  Version:          RGAA {catalog.version}")
    print(f"  Criteria:         {catalog.covered_count} covered"
          f" / {catalog.total_criteria} total"
          f" ({catalog.remaining_count} manual)")
    print(f"  Covered themes:   {', '.join(catalog.covered_themes)}")
    print("\n── Criteria ────────────────────────────────────────")
    for c in catalog.criteria:
        print(f"  {c.id:<5} {c.strategy.value:<14} {c.theme}")
    print("\n── Uncovered themes ────────────────────────────────")
    for t in catalog.uncovered_themes:
        print(f"  {t.id:>2}. {t.name} ({len(t.manual_checklist)} checks)")
    return 0


def cmd_sessions(store: SessionStore) -> int:
    ids = store.list_sessions()
    if not ids:
        print("  (no sessions)")
    for sid in ids:
        print(sid)
    return 0


def cmd_status(store: SessionStore, session_id: str) -> int:
    session = _load_session(store, session_id)
    if session is None:
        return 1
    _banner("RGAA Audit · Session")
    done = len(session.completed_pages)
    print(f"  Session:          {session.session_id}")
    print(f"  Started:          {session.started_at}")
    print(f"  Progress:         {done}/{session.total_pages} pages"
          f" ({session.failed_count} failed, {len(session.pending_pages)} pending)")
    failed = [r for r in session.results.values() if r.failed]
    if failed:
        print("\n── Failed pages ────────────────────────────────────")
        for r in failed:
            print(f"  ✗ {r.url}  ({r.error})")
    return 0


def cmd_remaining(store: SessionStore, session_id: str) -> int:
    urls = store.remaining_urls(session_id)
    if urls is None:
        print(f"  ✗ Session introuvable : {session_id}", file=sys.stderr)
        return 1
    for url in urls:
        print(url)
    return 0


def cmd_report(store: SessionStore, catalog, args, version: str) -> int:
    session = _load_session(store, args.session_id)
    if session is None:
        return 1
    report = report_from_session(session, catalog, version=version)
    text = json.dumps(report, indent=2 if args.pretty else None, ensure_ascii=False)
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(text)
            f.write("\n")
        print(f"  ✔ Report written to {args.out}")
    else:
        print(text)
    return 0


# ------------------------------------------------------------------
# Main
# ------------------------------------------------------------------

def main(argv=None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    store = SessionStore(args.sessions_dir or settings.sessions_dir)
    try:
        if args.command == "sessions":
            return cmd_sessions(store)
        if args.command == "status":
            return cmd_status(store, args.session_id)
        if args.command == "remaining":
            return cmd_remaining(store, args.session_id)

        catalog = load_catalog(args.catalog or settings.catalog_path)
        if args.command == "catalog":
            return cmd_catalog(catalog)
        return cmd_report(store, catalog, args, settings.report_version)
    except (CatalogError, CheckpointError, ValueError) as exc:
        print(f"  ✗ {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
