from typing import Any, Dict, List

from shelfpulse.database import Store
from shelfpulse.models import ReadingStatus

# Current month plus this many earlier ones
MONTH_WINDOW = 5


class StatsReporter:
    """Read-only grouped counts over a user's library."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def report(self, user_id: int) -> Dict[str, List[Dict[str, Any]]]:
        with self.store.read() as conn:
            genres = conn.execute(
                """
                SELECT g.name AS genre, COUNT(*) AS cnt
                FROM user_books ub
                JOIN book_genres bg ON bg.book_id = ub.book_id
                JOIN genres g ON g.id = bg.genre_id
                WHERE ub.user_id = ? AND ub.status = ?
                GROUP BY g.name
                ORDER BY cnt DESC, g.name
                """,
                (user_id, ReadingStatus.FINISHED.value),
            ).fetchall()

            months = conn.execute(
                """
                SELECT strftime('%Y-%m', ub.created_at) AS month, COUNT(*) AS cnt
                FROM user_books ub
                WHERE ub.user_id = ?
                  AND ub.created_at >= date('now', 'start of month', ?)
                GROUP BY month
                ORDER BY month
                """,
                (user_id, f"-{MONTH_WINDOW} months"),
            ).fetchall()

            statuses = conn.execute(
                """
                SELECT status, COUNT(*) AS cnt
                FROM user_books
                WHERE user_id = ?
                GROUP BY status
                ORDER BY status
                """,
                (user_id,),
            ).fetchall()

        return {
            "genres": [{"genre": r["genre"], "cnt": r["cnt"]} for r in genres],
            "months": [{"month": r["month"], "cnt": r["cnt"]} for r in months],
            "statuses": [{"status": r["status"], "cnt": r["cnt"]} for r in statuses],
        }
