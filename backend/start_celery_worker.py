#!/usr/bin/env python3
"""Start the maintenance worker (with embedded beat for the asset sweep)."""

import sys
import warnings

# Containers often run as root
warnings.filterwarnings('ignore', category=UserWarning, message='.*superuser privileges.*')
warnings.filterwarnings('ignore', category=RuntimeWarning, message='.*superuser privileges.*')

from app.workers.celery_app import celery_app

if __name__ == '__main__':
    celery_app.worker_main(
        argv=[
            'worker',
            '--beat',
            '--loglevel=info',
            '--queues=maintenance',
            '--pool=solo',
            '--without-mingle',
            '--without-gossip',
        ]
        + sys.argv[1:]
    )
