import os

os.environ.setdefault('DATABASE_URL', 'sqlite+pysqlite:///:memory:')
os.environ.setdefault('LOG_DIR', '')
os.environ.setdefault('LOG_LEVEL', 'WARNING')
os.environ.setdefault('BULK_MAX_WORKERS', '1')
