"""Allow running LearnLoop as a module: python -m learnloop CHILD_ID.

Prints the child's recent sessions and aggregate stats from the local
database.
"""

import argparse
import logging
import sys

from .database import SessionRepository, configure_engine, init_db
from .gamification import format_duration
from .session import PersistenceError
from .settings import load_settings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="learnloop",
        description="Show a child's recent learning sessions.",
    )
    parser.add_argument("child_id")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings()
    if settings.database_url:
        configure_engine(settings.database_url)
    init_db()

    repo = SessionRepository()
    limit = args.limit or settings.history_limit
    try:
        sessions = repo.fetch_recent(args.child_id, limit=limit)
        stats = repo.fetch_stats(args.child_id)
    except PersistenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if not sessions:
        print(f"No sessions yet for {args.child_id}.")
        return 0

    print(f"Recent sessions for {args.child_id}:")
    for s in sessions:
        minutes = round(s.total_duration / 60)
        print(
            f"  {s.created_at:%Y-%m-%d %H:%M}  {s.type.value:<10} "
            f"{s.state.value:<11} {format_duration(minutes):>8}  "
            f"{round(s.completion_rate * 100):>3}%  {s.title}"
        )

    print()
    print(f"Total sessions:   {stats.total_sessions}")
    print(f"Open sessions:    {stats.active_sessions}")
    print(f"Average duration: {format_duration(round(stats.average_duration / 60))}")
    print(f"Completion rate:  {round(stats.completion_rate * 100)}%")
    by_type = ", ".join(
        f"{t.value} {n}" for t, n in stats.sessions_by_type.items() if n
    )
    print(f"By type:          {by_type}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
