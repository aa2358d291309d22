#
# Copyright 2025 EDT&Partners
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

from icecream import ic
from sqlalchemy.orm import Session

from lti.config import load_settings
from database.db import init_db, get_session_local
from utility.session import SessionStore
from logging_config import setup_logging

logger = setup_logging(module_name='session_cleanup')


def cleanup_expired_sessions(db: Session) -> int:
    """Deactivate every session past its expiry. Safe to run repeatedly"""
    ic("Starting expired session sweep...")
    count = SessionStore(db).sweep_expired()
    ic(f"Expired session sweep finished, {count} sessions deactivated")
    return count


def main() -> int:
    settings = load_settings()
    init_db(settings.database_url)
    db = get_session_local()()
    try:
        return cleanup_expired_sessions(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
