"""
SQLite storage. One file, one connection per Storage, no ORM.

Tables:
- departments, specializations
- students, supervisors, projects
- project_specialization, supervisor_specialization: many-to-many tags
- allocations: project/student/supervisor bindings with approval status

Supervisor load is never stored. Every supervisor read computes it from
the allocations table.

The connection runs in autocommit mode. Multi-statement writes go through
transaction(), which takes SQLite's write lock up front (BEGIN IMMEDIATE)
so a check-then-insert sequence cannot interleave with another writer.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from models import (
    Allocation, AllocationStatus, Department, Project, ProjectStatus,
    Specialization, Student, Supervisor,
)

_SUPERVISOR_SELECT = """
    SELECT s.*,
           (SELECT COUNT(*) FROM allocations a
             WHERE a.supervisor_id = s.id AND a.status = 'approved') AS current_student_count
    FROM supervisors s
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Storage:
    def __init__(self, db_path: Path, timeout: float = 30.0):
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._migrate()

    def _migrate(self):
        """Create tables if they don't exist. No migration framework needed."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS departments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                code TEXT NOT NULL UNIQUE
            );

            CREATE TABLE IF NOT EXISTS specializations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                description TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS students (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                student_number TEXT NOT NULL UNIQUE,
                department_id INTEGER NOT NULL,
                level TEXT NOT NULL DEFAULT '',
                session TEXT NOT NULL DEFAULT '',
                FOREIGN KEY (department_id) REFERENCES departments(id)
            );

            CREATE TABLE IF NOT EXISTS supervisors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                staff_id TEXT NOT NULL UNIQUE,
                department_id INTEGER NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                bio TEXT NOT NULL DEFAULT '',
                max_students INTEGER NOT NULL CHECK (max_students >= 0),
                is_active INTEGER NOT NULL DEFAULT 1,
                FOREIGN KEY (department_id) REFERENCES departments(id)
            );

            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                student_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                objectives TEXT NOT NULL DEFAULT '',
                methodology TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL DEFAULT 'draft'
                    CHECK (status IN ('draft', 'submitted', 'approved',
                                      'rejected', 'in_progress', 'completed')),
                created_at TEXT NOT NULL,
                FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_projects_status
                ON projects(status);

            CREATE TABLE IF NOT EXISTS project_specialization (
                project_id INTEGER NOT NULL,
                specialization_id INTEGER NOT NULL,
                PRIMARY KEY (project_id, specialization_id),
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
                FOREIGN KEY (specialization_id) REFERENCES specializations(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS supervisor_specialization (
                supervisor_id INTEGER NOT NULL,
                specialization_id INTEGER NOT NULL,
                PRIMARY KEY (supervisor_id, specialization_id),
                FOREIGN KEY (supervisor_id) REFERENCES supervisors(id) ON DELETE CASCADE,
                FOREIGN KEY (specialization_id) REFERENCES specializations(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS allocations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL,
                supervisor_id INTEGER NOT NULL,
                student_id INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'approved', 'rejected', 'reassigned')),
                admin_notes TEXT,
                rejection_reason TEXT,
                match_score REAL
                    CHECK (match_score IS NULL OR (match_score >= 0 AND match_score <= 100)),
                allocated_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (project_id, supervisor_id),
                UNIQUE (student_id, supervisor_id),
                CHECK ((status = 'approved') = (allocated_at IS NOT NULL)),
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
                FOREIGN KEY (supervisor_id) REFERENCES supervisors(id) ON DELETE CASCADE,
                FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
            );

            -- At most one approved allocation per student
            CREATE UNIQUE INDEX IF NOT EXISTS idx_allocations_one_approved
                ON allocations(student_id) WHERE status = 'approved';
            CREATE INDEX IF NOT EXISTS idx_allocations_supervisor_status
                ON allocations(supervisor_id, status);
            CREATE INDEX IF NOT EXISTS idx_allocations_status
                ON allocations(status);
        """)

    @contextmanager
    def transaction(self):
        """
        Write transaction holding SQLite's reserved lock from the start.
        Nested use joins the outer transaction.
        """
        if self._conn.in_transaction:
            yield self
            return
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    # ── Reference data ──

    def add_department(self, name: str, code: str) -> Department:
        cursor = self._conn.execute(
            "INSERT INTO departments (name, code) VALUES (?, ?)", (name, code),
        )
        return Department(id=cursor.lastrowid, name=name, code=code)

    def get_department(self, department_id: int) -> Department | None:
        row = self._conn.execute(
            "SELECT * FROM departments WHERE id = ?", (department_id,)
        ).fetchone()
        if not row:
            return None
        return Department(id=row["id"], name=row["name"], code=row["code"])

    def add_specialization(self, name: str, description: str = "") -> Specialization:
        cursor = self._conn.execute(
            "INSERT INTO specializations (name, description) VALUES (?, ?)",
            (name, description),
        )
        return Specialization(id=cursor.lastrowid, name=name, description=description)

    # ── Students ──

    def add_student(
        self,
        name: str,
        email: str,
        student_number: str,
        department_id: int,
        level: str = "",
        session: str = "",
    ) -> Student:
        cursor = self._conn.execute(
            """INSERT INTO students (name, email, student_number, department_id, level, session)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (name, email, student_number, department_id, level, session),
        )
        return self.get_student(cursor.lastrowid)

    def get_student(self, student_id: int) -> Student | None:
        row = self._conn.execute(
            "SELECT * FROM students WHERE id = ?", (student_id,)
        ).fetchone()
        return self._row_to_student(row) if row else None

    def get_students(self, student_ids: list[int]) -> list[Student]:
        """Students by id, in ascending id order. Unknown ids are skipped."""
        if not student_ids:
            return []
        placeholders = ",".join("?" * len(student_ids))
        rows = self._conn.execute(
            f"SELECT * FROM students WHERE id IN ({placeholders}) ORDER BY id",
            list(student_ids),
        ).fetchall()
        return [self._row_to_student(r) for r in rows]

    # ── Supervisors ──

    def add_supervisor(
        self,
        name: str,
        email: str,
        staff_id: str,
        department_id: int,
        max_students: int,
        is_active: bool = True,
        title: str = "",
        bio: str = "",
        specialization_ids: list[int] | tuple = (),
    ) -> Supervisor:
        with self.transaction():
            cursor = self._conn.execute(
                """INSERT INTO supervisors
                   (name, email, staff_id, department_id, title, bio, max_students, is_active)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (name, email, staff_id, department_id, title, bio,
                 max_students, int(is_active)),
            )
            supervisor_id = cursor.lastrowid
            self._conn.executemany(
                "INSERT INTO supervisor_specialization (supervisor_id, specialization_id) VALUES (?, ?)",
                [(supervisor_id, sid) for sid in specialization_ids],
            )
        return self.get_supervisor(supervisor_id)

    def set_supervisor_active(self, supervisor_id: int, is_active: bool):
        self._conn.execute(
            "UPDATE supervisors SET is_active = ? WHERE id = ?",
            (int(is_active), supervisor_id),
        )

    def get_supervisor(self, supervisor_id: int) -> Supervisor | None:
        row = self._conn.execute(
            _SUPERVISOR_SELECT + " WHERE s.id = ?", (supervisor_id,)
        ).fetchone()
        return self._row_to_supervisor(row) if row else None

    def get_active_supervisors(self) -> list[Supervisor]:
        rows = self._conn.execute(
            _SUPERVISOR_SELECT + " WHERE s.is_active = 1 ORDER BY s.id"
        ).fetchall()
        return [self._row_to_supervisor(r) for r in rows]

    def get_available_supervisors(self) -> list[Supervisor]:
        """Active supervisors whose approved count is below capacity."""
        return [s for s in self.get_active_supervisors() if s.can_accept_more_students()]

    def supervisor_load(self, supervisor_id: int) -> int:
        """
        Approved allocations for a supervisor, counted straight from the
        allocations table. A diagnostic cross-check for the derived load;
        capacity decisions read `current_student_count` from supervisor rows.
        """
        return self._conn.execute(
            "SELECT COUNT(*) FROM allocations WHERE supervisor_id = ? AND status = 'approved'",
            (supervisor_id,),
        ).fetchone()[0]

    # ── Projects ──

    def add_project(
        self,
        student_id: int,
        title: str,
        description: str = "",
        objectives: str = "",
        methodology: str = "",
        status: ProjectStatus = ProjectStatus.DRAFT,
        specialization_ids: list[int] | tuple = (),
    ) -> Project:
        with self.transaction():
            cursor = self._conn.execute(
                """INSERT INTO projects
                   (student_id, title, description, objectives, methodology, status, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (student_id, title, description, objectives, methodology,
                 status.value, _now()),
            )
            project_id = cursor.lastrowid
            self._conn.executemany(
                "INSERT INTO project_specialization (project_id, specialization_id) VALUES (?, ?)",
                [(project_id, sid) for sid in specialization_ids],
            )
        return self.get_project(project_id)

    def set_project_status(self, project_id: int, status: ProjectStatus):
        self._conn.execute(
            "UPDATE projects SET status = ? WHERE id = ?", (status.value, project_id),
        )

    def get_project(self, project_id: int) -> Project | None:
        row = self._conn.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        ).fetchone()
        return self._row_to_project(row) if row else None

    def get_unallocated_submitted_projects(self) -> list[Project]:
        """Submitted projects that have no allocation in any status."""
        rows = self._conn.execute(
            """SELECT p.* FROM projects p
               WHERE p.status = 'submitted'
                 AND NOT EXISTS (SELECT 1 FROM allocations a WHERE a.project_id = p.id)
               ORDER BY p.id"""
        ).fetchall()
        return [self._row_to_project(r) for r in rows]

    def count_projects(self, status: ProjectStatus | None = None) -> int:
        if status is None:
            return self._conn.execute("SELECT COUNT(*) FROM projects").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM projects WHERE status = ?", (status.value,)
        ).fetchone()[0]

    # ── Allocations ──

    def create_allocation(
        self,
        project_id: int,
        student_id: int,
        supervisor_id: int,
        match_score: float | None = None,
        admin_notes: str | None = None,
        status: AllocationStatus = AllocationStatus.PENDING,
    ) -> Allocation:
        """Insert an allocation. Raises sqlite3.IntegrityError on constraint violation."""
        now = _now()
        allocated_at = now if status == AllocationStatus.APPROVED else None
        cursor = self._conn.execute(
            """INSERT INTO allocations
               (project_id, supervisor_id, student_id, status, admin_notes,
                match_score, allocated_at, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (project_id, supervisor_id, student_id, status.value, admin_notes,
             match_score, allocated_at, now, now),
        )
        return self.get_allocation(cursor.lastrowid)

    def update_allocation(self, allocation_id: int, **fields) -> Allocation | None:
        """
        Update allocation columns. `status` may be an AllocationStatus.
        allocated_at follows status: stamped when moving to approved,
        cleared when moving anywhere else.
        """
        allowed = {"supervisor_id", "status", "match_score", "admin_notes", "rejection_reason"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update allocation fields: {sorted(unknown)}")

        if "status" in fields:
            status = AllocationStatus(fields["status"])
            fields["status"] = status.value
            fields["allocated_at"] = _now() if status == AllocationStatus.APPROVED else None
        fields["updated_at"] = _now()

        assignments = ", ".join(f"{col} = ?" for col in fields)
        self._conn.execute(
            f"UPDATE allocations SET {assignments} WHERE id = ?",
            list(fields.values()) + [allocation_id],
        )
        return self.get_allocation(allocation_id)

    def delete_allocation(self, allocation_id: int) -> bool:
        cursor = self._conn.execute("DELETE FROM allocations WHERE id = ?", (allocation_id,))
        return cursor.rowcount > 0

    def get_allocation(self, allocation_id: int) -> Allocation | None:
        row = self._conn.execute(
            "SELECT * FROM allocations WHERE id = ?", (allocation_id,)
        ).fetchone()
        return self._row_to_allocation(row) if row else None

    def list_allocations(
        self,
        status: AllocationStatus | None = None,
        supervisor_id: int | None = None,
        student_id: int | None = None,
    ) -> list[Allocation]:
        conditions = []
        params: list = []
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        if supervisor_id is not None:
            conditions.append("supervisor_id = ?")
            params.append(supervisor_id)
        if student_id is not None:
            conditions.append("student_id = ?")
            params.append(student_id)

        query = "SELECT * FROM allocations"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY id"
        rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_allocation(r) for r in rows]

    def count_allocations(self, status: AllocationStatus | None = None) -> int:
        if status is None:
            return self._conn.execute("SELECT COUNT(*) FROM allocations").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM allocations WHERE status = ?", (status.value,)
        ).fetchone()[0]

    def average_match_score(self) -> float | None:
        """Mean over allocations with a score. None when there are none."""
        return self._conn.execute(
            "SELECT AVG(match_score) FROM allocations WHERE match_score IS NOT NULL"
        ).fetchone()[0]

    def student_has_approved_allocation(self, student_id: int, exclude_id: int | None = None) -> bool:
        query = "SELECT 1 FROM allocations WHERE student_id = ? AND status = 'approved'"
        params: list = [student_id]
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        return self._conn.execute(query, params).fetchone() is not None

    def project_has_allocation(self, project_id: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM allocations WHERE project_id = ?", (project_id,)
        ).fetchone()
        return row is not None

    # ── Row mapping ──

    def _specializations_for(self, table: str, owner_column: str, owner_id: int) -> list[Specialization]:
        rows = self._conn.execute(
            f"SELECT sp.* FROM specializations sp "
            f"JOIN {table} link ON link.specialization_id = sp.id "
            f"WHERE link.{owner_column} = ? ORDER BY sp.id",
            (owner_id,),
        ).fetchall()
        return [
            Specialization(id=r["id"], name=r["name"], description=r["description"])
            for r in rows
        ]

    def _row_to_student(self, row: sqlite3.Row) -> Student:
        return Student(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            student_number=row["student_number"],
            department_id=row["department_id"],
            level=row["level"],
            session=row["session"],
            department=self.get_department(row["department_id"]),
        )

    def _row_to_supervisor(self, row: sqlite3.Row) -> Supervisor:
        return Supervisor(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            staff_id=row["staff_id"],
            department_id=row["department_id"],
            max_students=row["max_students"],
            is_active=bool(row["is_active"]),
            title=row["title"],
            bio=row["bio"],
            specializations=self._specializations_for(
                "supervisor_specialization", "supervisor_id", row["id"]
            ),
            department=self.get_department(row["department_id"]),
            current_student_count=row["current_student_count"],
        )

    def _row_to_project(self, row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            student_id=row["student_id"],
            title=row["title"],
            description=row["description"],
            objectives=row["objectives"],
            methodology=row["methodology"],
            status=ProjectStatus(row["status"]),
            specializations=self._specializations_for(
                "project_specialization", "project_id", row["id"]
            ),
        )

    def _row_to_allocation(self, row: sqlite3.Row) -> Allocation:
        return Allocation(
            id=row["id"],
            project_id=row["project_id"],
            student_id=row["student_id"],
            supervisor_id=row["supervisor_id"],
            status=AllocationStatus(row["status"]),
            match_score=row["match_score"],
            admin_notes=row["admin_notes"],
            rejection_reason=row["rejection_reason"],
            allocated_at=_parse_ts(row["allocated_at"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def close(self):
        self._conn.close()
