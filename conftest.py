"""
Root pytest configuration.

Settings are loaded at import time, so credentials must exist before any
shared module is imported.
"""
import os

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test_service_key_1234567890123456789012345678901234567890")
os.environ.setdefault("EXPORT_TEMP_DIR", "/tmp/video_exporter_tests")
