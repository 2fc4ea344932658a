"""
Main entry point for the Interview Tracker.
Provides a CLI that prints the schedule and can follow live changes.
"""
import asyncio
import sys
from datetime import date

from config import configure_logging, load_settings
from calendar_projector import weeks
from errors import TrackerError
from state import ChangeEvent, YearMonth
from tracker import TrackerSession

WEEKDAYS = ["Mo", "Tu", "We", "Th", "Fr", "Sa", "Su"]


def print_separator():
    print("=" * 60)


def print_stats(session: TrackerSession):
    s = session.stats()
    print(f"Total: {s.total}  Scheduled: {s.scheduled}  Completed: {s.completed}  Passed: {s.passed}")


def print_calendar(session: TrackerSession, month: YearMonth):
    """Print the month grid; days outside the month are bracketed."""
    today = date.today()
    print(f"\n{month}")
    print(" ".join(f"{d:>5}" for d in WEEKDAYS))
    for row in weeks(session.calendar(month, today)):
        cells = []
        for bucket in row:
            label = f"{bucket.date.day:2d}"
            if bucket.interviews:
                label += f"*{len(bucket.interviews)}"
            if bucket.out_of_month:
                label = f"({label})"
            cells.append(f"{label:>5}")
        print(" ".join(cells))
    print()


def print_upcoming(session: TrackerSession):
    rows = session.upcoming()
    if not rows:
        print("No upcoming interviews.")
        return
    print("Upcoming:")
    print("-" * 40)
    for interview in rows:
        invitation = ""
        if interview.is_invitation:
            invitation = f" [invitation: {interview.invitation_status.value}]"
        print(f"  {interview.date} {interview.time}  {interview.company} - {interview.position}{invitation}")


def print_change(event: ChangeEvent):
    print(f"[{event.kind.value}] interview {event.interview_id}")


async def follow(session: TrackerSession):
    session.channel.subscribe(print_change)
    print("Following changes, Ctrl+C to stop...")
    try:
        await session.run()
    finally:
        await session.close()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Interview Tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings come from TRACKER_* environment variables or a .env file.

Examples:
  python main.py                 # Current month
  python main.py 2024-03         # Specific month
  python main.py --follow        # Stay connected and print changes
  python main.py --view 42       # Calendar shared with you by user 42
        """,
    )
    parser.add_argument("month", nargs="?", help="Month to show as YYYY-MM (optional)")
    parser.add_argument("--follow", action="store_true", help="Follow live changes")
    parser.add_argument("--view", type=int, help="Show the calendar user VIEW shared with you")

    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level)

    try:
        month = YearMonth.parse(args.month) if args.month else YearMonth.of(date.today())
    except ValueError:
        print(f"Invalid month: {args.month}")
        sys.exit(2)

    session = TrackerSession.from_settings(settings)
    try:
        session.start()
        if args.view is not None:
            asyncio.run(session.open_delegated_view(args.view))
    except TrackerError as exc:
        print(f"Could not load the tracker: {exc.message}")
        sys.exit(1)

    print_separator()
    print("INTERVIEW TRACKER")
    print_separator()
    print_stats(session)
    print_calendar(session, month)
    print_upcoming(session)

    if args.view is not None:
        print_separator()
        print(f"SHARED BY USER {args.view}")
        print_separator()
        for interview in session.delegated_view(args.view).store:
            print(f"  {interview.date} {interview.time}  {interview.company} - {interview.position}")

    if args.follow:
        try:
            asyncio.run(follow(session))
        except KeyboardInterrupt:
            print("\nGoodbye!")


if __name__ == "__main__":
    main()
