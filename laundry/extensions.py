# laundry/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# ======================
# Database
# ======================
db = SQLAlchemy()
migrate = Migrate(compare_type=True)

# ======================
# Login Manager
# ======================
# Counter staff only; customers never sign in (they use /track).
login_manager = LoginManager()
login_manager.login_view = "auth.login"
login_manager.login_message = "Please sign in to open the order desk."
login_manager.login_message_category = "info"

# ======================
# Rate Limiter
# ======================
# Storage comes from RATELIMIT_STORAGE_URI (Redis in production, memory:// locally).
# Only login, public tracking and the SMS functions carry limits.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
)
