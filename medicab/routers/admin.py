"""Administration: database exports and table statistics (admin only)"""
import csv
import io
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import FileResponse
from sqlalchemy import MetaData, Table, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.schema import CreateTable

from medicab.auth import TokenIdentity, get_admin
from medicab.database import Base, get_db
from medicab.errors import DatabaseError
from medicab.utils.file import get_file_info, remove_file_later, write_temp_file

logger = logging.getLogger("medicab.app")
audit_logger = logging.getLogger("medicab.audit")

EXPORT_PREFIX = "medicab_backup_"
EXPORT_FORMATS = {
    "sql": "application/sql",
    "csv": "text/csv",
    "json": "application/json",
}

router = APIRouter(
    prefix="/admin",
    tags=["admin"]
)


def list_tables(db: Session) -> List[Table]:
    """Tables actually present in the database, or the model tables if it cannot be inspected"""
    metadata = MetaData()
    try:
        metadata.reflect(bind=db.get_bind())
        tables = list(metadata.sorted_tables)
    except SQLAlchemyError as e:
        logger.warning(f"Could not inspect database tables, using model metadata: {e}")
        tables = []
    return tables or list(Base.metadata.sorted_tables)


def fetch_tables(db: Session) -> List[Tuple[Table, List[Dict[str, Any]], str]]:
    """Rows of every table; a failing table is reported with its error instead"""
    dump = []
    for table in list_tables(db):
        try:
            rows = [dict(row) for row in db.execute(select(table)).mappings().all()]
            dump.append((table, rows, None))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error exporting table {table.name}: {e}")
            dump.append((table, [], str(e)))
    return dump


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (datetime, date)):
        value = value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    elif isinstance(value, (list, dict)):
        value = json.dumps(value, ensure_ascii=False)
    else:
        value = str(value)
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def render_sql(dump, database_name: str, dialect) -> str:
    lines = [
        "-- Medicab SQL Dump",
        f"-- Generated: {datetime.now().isoformat(timespec='seconds')}",
        f"-- Database: `{database_name}`",
        "",
        "START TRANSACTION;",
        "",
    ]
    for table, rows, error in dump:
        lines.append("-- " + "-" * 60)
        lines.append(f"-- Table structure for table `{table.name}`")
        lines.append("-- " + "-" * 60)
        lines.append(f"DROP TABLE IF EXISTS {table.name};")
        lines.append(str(CreateTable(table).compile(dialect=dialect)).strip() + ";")
        lines.append("")
        if error:
            lines.append(f"-- ERROR exporting {table.name}: {error}")
        elif rows:
            lines.append(f"-- Dumping data for table `{table.name}` ({len(rows)} records)")
            columns = ", ".join(rows[0].keys())
            for row in rows:
                values = ", ".join(sql_literal(value) for value in row.values())
                lines.append(f"INSERT INTO {table.name} ({columns}) VALUES ({values});")
        lines.append("")
    lines.append("COMMIT;")
    return "\n".join(lines) + "\n"


def render_csv(dump, database_name: str) -> str:
    buffer = io.StringIO()
    buffer.write("Medicab Database CSV Export\n")
    buffer.write(f"Generated: {datetime.now().isoformat(timespec='seconds')}\n")
    buffer.write(f"Database: {database_name}\n\n")

    for table, rows, error in dump:
        if error:
            buffer.write(f"\n=== TABLE: {table.name} (ERROR: {error}) ===\n\n")
            continue
        if not rows:
            continue
        buffer.write(f"\n=== TABLE: {table.name} ({len(rows)} records) ===\n")
        writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()), lineterminator="\n")
        writer.writeheader()
        for row in rows:
            writer.writerow({
                key: json.dumps(value) if isinstance(value, (list, dict)) else value
                for key, value in row.items()
            })
        buffer.write("\n")
    return buffer.getvalue()


def render_json(dump, database_name: str) -> str:
    export = {
        "export_date": datetime.now().isoformat(timespec="seconds"),
        "database": database_name,
        "version": "1.0",
        "tables": {},
    }
    for table, rows, error in dump:
        entry = {"count": len(rows), "data": rows}
        if error:
            entry["error"] = error
        export["tables"][table.name] = entry
    return json.dumps(export, indent=2, ensure_ascii=False, default=str)


def export_response(
    fmt: str,
    request: Request,
    db: Session,
    background_tasks: BackgroundTasks,
    current_user: TokenIdentity,
) -> FileResponse:
    settings = request.app.state.settings
    filename = f"{EXPORT_PREFIX}{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.{fmt}"

    try:
        dump = fetch_tables(db)
        if fmt == "sql":
            content = render_sql(dump, settings.database_name, db.get_bind().dialect)
        elif fmt == "csv":
            content = render_csv(dump, settings.database_name)
        else:
            content = render_json(dump, settings.database_name)
    except SQLAlchemyError as e:
        logger.error(f"Error in {fmt.upper()} export: {e}")
        raise DatabaseError(f"{fmt.upper()} export failed", detail=str(e))

    file_path = write_temp_file(EXPORT_PREFIX, f".{fmt}", content)
    info = get_file_info(file_path)
    audit_logger.info(
        f"User {current_user.user_id} exported the database as {fmt.upper()} "
        f"({len(dump)} tables, {info['size']} bytes)"
    )

    background_tasks.add_task(remove_file_later, file_path, settings.export_cleanup_delay)
    return FileResponse(path=file_path, filename=filename, media_type=EXPORT_FORMATS[fmt])

# ----------------------------
# Exports
# ----------------------------
@router.get("/export/sql")
def export_sql(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin)
):
    """Download the whole database as an SQL dump"""
    return export_response("sql", request, db, background_tasks, current_user)

@router.get("/export/csv")
def export_csv(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin)
):
    """Download every non-empty table as CSV sections in one file"""
    return export_response("csv", request, db, background_tasks, current_user)

@router.get("/export/json")
def export_json(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin)
):
    return export_response("json", request, db, background_tasks, current_user)

# ----------------------------
# Statistics
# ----------------------------
@router.get("/stats")
def database_stats(
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin)
):
    """Row count of every table"""
    stats = {}
    total_rows = 0
    for table in list_tables(db):
        try:
            count = db.execute(select(func.count()).select_from(table)).scalar_one()
            stats[table.name] = {"rows": count}
            total_rows += count
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error getting stats for table {table.name}: {e}")
            stats[table.name] = {"rows": 0, "error": str(e)}

    return {
        "total_tables": len(stats),
        "total_rows": total_rows,
        "tables": stats,
        "export_formats": ["SQL", "CSV", "JSON"],
    }
