import csv
import os
from datetime import datetime

LOG_FILE = os.path.join("family_tree_data", "activity_log.csv")
LOG_HEADER = ["Timestamp", "User", "Action", "Details"]


def _current_user(default: str = "Local Admin") -> str:
    # Streamlit keeps the signed-in name in session_state; outside a running app there is none
    try:
        import streamlit as st
    except ImportError:
        return default
    try:
        return st.session_state.get('name', default)
    except (AttributeError, RuntimeError, KeyError):
        return default


class LoggerService:
    def __init__(self, log_file: str = LOG_FILE):
        self.log_file = log_file
        if not os.path.exists(self.log_file):
            log_dir = os.path.dirname(self.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            with open(self.log_file, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(LOG_HEADER)

    def log(self, action: str, details: str):
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        user = _current_user()

        try:
            with open(self.log_file, 'a', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow([timestamp, user, action, details])
        except OSError as e:
            print(f"Logging error: {e}")

    def get_recent_logs(self, limit=20):
        """Newest first, header excluded."""
        if not os.path.exists(self.log_file): return []
        try:
            with open(self.log_file, 'r', newline='', encoding='utf-8') as f:
                reader = list(csv.reader(f))
        except (OSError, csv.Error):
            return []
        if len(reader) < 2: return []
        data = reader[1:]
        return data[-limit:][::-1]
