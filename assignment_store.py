# Read access to the trusted content database (assignments and their solutions)
# Uses the write-capable pool; nothing here ever sees user SQL.

from db import WritePool


class AssignmentStore:
    def __init__(self, pool: WritePool):
        self.pool = pool

    def get_solution(self, assignment_id: str) -> str | None:
        with self.pool.connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    "SELECT solution_sql FROM assignments WHERE id = %s AND is_active = 1",
                    (assignment_id,),
                )
                row = cursor.fetchone()
            finally:
                cursor.close()
        return row[0] if row else None
