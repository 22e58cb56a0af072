import argparse
import json
from pathlib import Path

from .env import load_env

from . import __version__
from .assessments import get_result, get_result_with_grant, get_statistics, submit_assessment, submit_feedback
from .cleanup import run_cleanup
from .config import get_settings, reset_settings
from .database import init_database
from .errors import CareerFitError, ValidationError
from .grants import get_grant_status, issue_grant, revoke_grant, validate_token
from .ledger import token_usage_report
from .logger import get_logger
from .notifications import dispatch, send_access_token
from .selector import start_session
from .types import Viewer


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _read_json(path_str: str):
    path = Path(path_str)
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _fail_validation(e: ValidationError) -> None:
    print(f"{e.message}:")
    for err in e.errors:
        print(f" - {err}")
    raise SystemExit(2)


def cmd_init_db(args: argparse.Namespace) -> None:
    init_database(args.db)
    print(f"Database ready: {args.db}")


def cmd_start(args: argparse.Namespace) -> None:
    _print_json(start_session(args.db))


def cmd_submit(args: argparse.Namespace) -> None:
    data = _read_json(args.input)
    # either a bare list of responses or {"responses": [...], "jobPreferences": {...}}
    if isinstance(data, list):
        responses, prefs = data, None
    else:
        responses, prefs = data.get("responses", []), data.get("jobPreferences")
    if args.preferences:
        prefs = _read_json(args.preferences)

    try:
        result = submit_assessment(args.db, args.session, responses, prefs)
    except ValidationError as e:
        _fail_validation(e)
        return

    print(f"Career code: {result['careerCode']}")
    print(f"Total score: {result['totalScore']} ({result['tier']})")
    print("Top matches:")
    for m in result["matches"]:
        print(f" - {m['careerName']} [{m['matchType']}] score={m['matchScore']} r={m['correlation']:.3f}")
    if result["streamRecommendation"]:
        print(f"Recommended stream: {result['streamRecommendation']['recommendedStream']}")


def cmd_result(args: argparse.Namespace) -> None:
    _print_json(get_result(args.db, args.session))


def cmd_unlock(args: argparse.Namespace) -> None:
    viewer = Viewer(
        first_name=args.first_name,
        last_name=args.last_name,
        student_class=args.student_class,
        contact_email=args.email,
    )
    result = get_result_with_grant(args.db, args.token, args.session, viewer)
    access = result["access"]
    label = "Review" if access["isReview"] else "Unlocked"
    print(f"{label}: {result['careerCode']} ({result['tier']})")
    print(f"Views: {access['viewCount']}  Remaining uses: {access['remainingUsage']}")


def cmd_issue_token(args: argparse.Namespace) -> None:
    try:
        grant = issue_grant(
            args.db,
            email=args.email,
            grant_type=args.type,
            name=args.name,
            institution=args.institution,
            max_usage=args.max_usage,
        )
    except ValidationError as e:
        _fail_validation(e)
        return

    print(f"Token: {grant['token']}")
    print(f"Type: {grant['type']}  Max usage: {grant['maxUsage']}  Expires: {grant['expiresAt']}")
    if args.send_email:
        sent = dispatch(send_access_token, grant)
        print("Email sent" if sent else "[warn] email could not be sent")


def cmd_validate_token(args: argparse.Namespace) -> None:
    verdict = validate_token(args.db, args.token)
    if not verdict["valid"]:
        print(f"Invalid: {verdict['reason']}")
        raise SystemExit(2)
    print(f"Valid ({verdict['type']}), remaining uses: {verdict['remainingUsage']}")


def cmd_token_status(args: argparse.Namespace) -> None:
    _print_json(get_grant_status(args.db, args.token))


def cmd_revoke_token(args: argparse.Namespace) -> None:
    status = revoke_grant(args.db, args.token)
    print(f"Revoked {status['token']}")


def cmd_token_report(args: argparse.Namespace) -> None:
    _print_json(token_usage_report(args.db, args.token))


def cmd_feedback(args: argparse.Namespace) -> None:
    try:
        submit_feedback(args.db, args.session, args.text, args.rating)
    except ValidationError as e:
        _fail_validation(e)
        return
    print("Feedback saved")


def cmd_stats(args: argparse.Namespace) -> None:
    _print_json(get_statistics(args.db))


def cmd_cleanup(args: argparse.Namespace) -> None:
    counts = run_cleanup(args.db)
    print(f"Done. sessions-removed={counts['sessions_removed']} grants-expired={counts['grants_expired']}")
    if args.metrics:
        get_logger().log_metrics_summary()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="careerfit", description="RIASEC career assessment CLI")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", default=get_settings().database,
                        help="SQLite path or SQLAlchemy URL (default: $CAREERFIT_DATABASE or data/careerfit.db)")

    subparsers = parser.add_subparsers(dest="command")

    ini = subparsers.add_parser("init-db", help="Create database tables")
    ini.set_defaults(func=cmd_init_db)

    st = subparsers.add_parser("start", help="Start a session and print its 60 questions as JSON")
    st.set_defaults(func=cmd_start)

    sub = subparsers.add_parser("submit", help="Submit responses for a session")
    sub.add_argument("--session", required=True, help="Session token from 'start'")
    sub.add_argument("--input", required=True, help="JSON file: list of {questionId, score} or {responses, jobPreferences}")
    sub.add_argument("--preferences", help="Optional JSON file with job preferences")
    sub.set_defaults(func=cmd_submit)

    res = subparsers.add_parser("result", help="Print a stored result")
    res.add_argument("--session", required=True)
    res.set_defaults(func=cmd_result)

    unl = subparsers.add_parser("unlock", help="Unlock a result with an access token")
    unl.add_argument("--token", required=True, help="Access token, e.g. LINCO-A3F8")
    unl.add_argument("--session", required=True)
    unl.add_argument("--first-name", required=True)
    unl.add_argument("--last-name", required=True)
    unl.add_argument("--class", dest="student_class", required=True, help="Student class, e.g. SS2")
    unl.add_argument("--email", help="Optional contact email for the result notification")
    unl.set_defaults(func=cmd_unlock)

    iss = subparsers.add_parser("issue-token", help="Issue an access token")
    iss.add_argument("--email", required=True)
    iss.add_argument("--type", required=True, choices=["INDIVIDUAL", "ENTERPRISE"])
    iss.add_argument("--name")
    iss.add_argument("--institution")
    iss.add_argument("--max-usage", type=int, help="Required for ENTERPRISE tokens")
    iss.add_argument("--send-email", action="store_true", help="Email the token to its owner")
    iss.set_defaults(func=cmd_issue_token)

    val = subparsers.add_parser("validate-token", help="Check whether a token can still be used")
    val.add_argument("--token", required=True)
    val.set_defaults(func=cmd_validate_token)

    sts = subparsers.add_parser("token-status", help="Show token state and usage counters")
    sts.add_argument("--token", required=True)
    sts.set_defaults(func=cmd_token_status)

    rev = subparsers.add_parser("revoke-token", help="Revoke a token")
    rev.add_argument("--token", required=True)
    rev.set_defaults(func=cmd_revoke_token)

    rep = subparsers.add_parser("token-report", help="List results unlocked with a token")
    rep.add_argument("--token", required=True)
    rep.set_defaults(func=cmd_token_report)

    fb = subparsers.add_parser("feedback", help="Attach feedback to a result")
    fb.add_argument("--session", required=True)
    fb.add_argument("--text", required=True)
    fb.add_argument("--rating", type=int, help="1-5")
    fb.set_defaults(func=cmd_feedback)

    sta = subparsers.add_parser("stats", help="Aggregate statistics over all results")
    sta.set_defaults(func=cmd_stats)

    cln = subparsers.add_parser("cleanup", help="Delete expired sessions and expire lapsed tokens")
    cln.add_argument("--metrics", action="store_true", help="Log a metrics summary afterwards")
    cln.set_defaults(func=cmd_cleanup)

    return parser


def main(argv=None):
    # Load .env if present (CAREERFIT_DATABASE, GROQ_API_KEY, RESEND_API_KEY, etc.)
    load_env()
    reset_settings()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            args.func(args)
        except CareerFitError as e:
            raise SystemExit(str(e))
        return

    parser.print_help()


if __name__ == "__main__":
    main()
