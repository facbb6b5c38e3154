import os
import sys
import tempfile

# Make the top-level modules importable and keep the SQLite slot out of the repo
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("POLICYPILOT_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="policypilot-"), "test.db"))
