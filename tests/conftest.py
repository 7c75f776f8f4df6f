import os
import tempfile

# cheap hashes and a throwaway data directory for every module imported by the tests
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="test-yourself-data-"))
