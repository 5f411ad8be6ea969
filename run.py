#!/usr/bin/env python3
"""Development runner: one backup pass with the development config"""
import sys
from dbbackup import create_app
from dbbackup.orchestrator import run_scheduled_backup

if __name__ == '__main__':
    app = create_app('development')

    with app.app_context():
        sys.exit(run_scheduled_backup(app))
