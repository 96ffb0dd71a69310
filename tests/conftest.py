import os

# Keep the module-level engine off the working directory.
os.environ.setdefault("DATABASE_URL", "sqlite://")
