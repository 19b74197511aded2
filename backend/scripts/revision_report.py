"""CLI script to inspect (or reset) revision statistics.
Usage: python scripts/revision_report.py [--bank PATH] [--category NAME] [--reset --yes]
"""
import sys
import argparse
import asyncio
import pathlib
from typing import Optional
# Ensure `backend/` is on sys.path so `revision` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from revision.config import settings
from revision.errors import StorageError
from revision.scheduler import RevisionScheduler, filter_by_category
from revision.services import ReportingService
from revision.store import StatisticsStore
from revision.utils.parsers import load_revision_content


async def main(bank: pathlib.Path, category: Optional[str] = None, reset: bool = False):
    """Print the current revision order, weak categories and session overview.

    With `reset` the stored statistics are cleared instead. Results are
    printed to stdout for a quick CLI feedback loop.
    """
    store = StatisticsStore(settings.DATABASE_URL, category_window=settings.CATEGORY_STATS_WINDOW)
    try:
        await store.init()
    except StorageError as e:
        print(f'Statistics store unavailable: {e}')
        return 1
    try:
        if reset:
            await store.clear_all_data()
            print('All statistics cleared')
            return 0
        if not bank.exists():
            print(f'Question bank not found at {bank}')
            return 1
        questions = load_revision_content(bank).questions
        if category:
            questions = filter_by_category(questions, category)
        prioritized = await RevisionScheduler(store).prioritize_questions(questions)
        for p in prioritized:
            print(f'{p.priority:>3}  {p.question.id:<12} {p.reason}')
        reporting = ReportingService(store, recent_sessions_limit=settings.RECENT_SESSIONS_LIMIT)
        weak = await reporting.get_weak_categories()
        print(f'Weak categories: {", ".join(weak) if weak else "none"}')
        overview = await reporting.get_overview()
        print(
            f'Recent sessions: {overview.sessions}, answered {overview.total_questions}, '
            f'correct {overview.total_correct} ({overview.overall_rate:.0f}%)'
        )
        return 0
    finally:
        await store.close()


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--bank', type=pathlib.Path, default=settings.QUESTION_BANK_PATH, help='Question bank JSON file')
    parser.add_argument('--category', help='Only report questions in this category')
    parser.add_argument('--reset', action='store_true', help='Clear all stored statistics')
    parser.add_argument('--yes', action='store_true', help='Confirm an irreversible --reset')
    args = parser.parse_args()
    if args.reset and not args.yes:
        parser.error('--reset clears all history; pass --yes to confirm')
    sys.exit(asyncio.run(main(args.bank, category=args.category, reset=args.reset)))
