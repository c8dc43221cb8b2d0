"""
Daily JSON snapshots of location category reports.

Layout:
    <base_dir>/<location_id>/<MM-YYYY>/<YYYY-MM-DD>.json

The first report served for a (location, month) on a given day is written;
later requests that day leave the file alone. Files older than the retention
window are removed by ``clean_old_backups``.
"""

import json
import logging
import os
import re
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

_UNSAFE_PATH_CHARS = re.compile(r'[^A-Za-z0-9_.-]')


def _safe_segment(value):
    segment = _UNSAFE_PATH_CHARS.sub('_', str(value)).strip('.')
    return segment or '_'


def backup_path(base_dir, location_id, budget_month, backup_date=None):
    backup_date = backup_date or date.today()
    return os.path.join(
        base_dir,
        _safe_segment(location_id),
        _safe_segment(budget_month),
        f'{backup_date.isoformat()}.json',
    )


def save_daily_backup(base_dir, location_id, budget_month, report, backup_date=None):
    """Write today's snapshot unless one exists. Returns the path written, or None."""
    backup_date = backup_date or date.today()
    path = backup_path(base_dir, location_id, budget_month, backup_date)
    if os.path.exists(path):
        logger.debug("Backup already exists: %s", path)
        return None

    os.makedirs(os.path.dirname(path), exist_ok=True)
    payload = {
        'metadata': {
            'backupDate': backup_date.isoformat(),
            'budgetMonth': budget_month,
            'locationId': str(location_id),
            'createdAt': datetime.utcnow().isoformat() + 'Z',
        },
        'data': report,
    }
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, default=str)
    logger.info("Backup saved: %s", path)
    return path


def _file_date(path, filename):
    try:
        return datetime.strptime(filename[:-len('.json')], '%Y-%m-%d').date()
    except ValueError:
        return date.fromtimestamp(os.path.getmtime(path))


def clean_old_backups(base_dir, days_to_keep=10, today=None):
    """Delete snapshots older than ``days_to_keep`` days. Returns the number deleted."""
    if not os.path.isdir(base_dir):
        return 0
    cutoff = (today or date.today()) - timedelta(days=days_to_keep)
    deleted = 0

    for location in os.listdir(base_dir):
        location_path = os.path.join(base_dir, location)
        if not os.path.isdir(location_path):
            continue
        for month in os.listdir(location_path):
            month_path = os.path.join(location_path, month)
            if not os.path.isdir(month_path):
                continue
            for filename in os.listdir(month_path):
                if not filename.endswith('.json'):
                    continue
                path = os.path.join(month_path, filename)
                if _file_date(path, filename) < cutoff:
                    os.remove(path)
                    deleted += 1
            if not os.listdir(month_path):
                os.rmdir(month_path)
        if not os.listdir(location_path):
            os.rmdir(location_path)

    if deleted:
        logger.info("Cleaned %s old backup files (keeping last %s days)", deleted, days_to_keep)
    return deleted


def snapshot_report(config, location_id, budget_month, report):
    """Save a snapshot and prune old ones. Failures are logged, never raised."""
    if not config.REPORT_BACKUP_ENABLED or not location_id or not budget_month:
        return None
    try:
        path = save_daily_backup(config.REPORT_BACKUP_DIR, location_id, budget_month, report)
        clean_old_backups(config.REPORT_BACKUP_DIR, config.REPORT_BACKUP_DAYS)
        return path
    except OSError as e:
        logger.error("Report backup failed for location %s month %s: %s", location_id, budget_month, e)
        return None
