"""
MongoDB utility functions for the API request audit log.

Scheduling writes and rejected proposals are recorded in the `api_logs`
collection. MongoDB is optional: when it cannot be reached, logging is
skipped and requests are served normally.
"""
import logging
from datetime import datetime, timezone

from django.conf import settings
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

logger = logging.getLogger(__name__)

# MongoDB client singleton
_mongo_client = None
_mongo_db = None
_mongo_available = None


def get_mongo_db():
    """Get MongoDB database instance (singleton pattern)."""
    global _mongo_client, _mongo_db, _mongo_available

    if not getattr(settings, 'API_LOGGING_ENABLED', True):
        return None

    # If we already know MongoDB is unavailable, return None
    if _mongo_available is False:
        return None

    if _mongo_db is None:
        try:
            _mongo_client = MongoClient(
                settings.MONGODB_URI,
                serverSelectionTimeoutMS=3000,
                connectTimeoutMS=3000
            )
            _mongo_client.admin.command('ping')
            _mongo_db = _mongo_client[settings.MONGODB_NAME]
            _mongo_available = True

            _ensure_indexes(_mongo_db)
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.warning("MongoDB connection failed, API logging disabled: %s", e)
            _mongo_available = False
            return None

    return _mongo_db


def _ensure_indexes(db):
    """Create necessary indexes for the audit collection."""
    try:
        api_logs = db.api_logs
        api_logs.create_index([("timestamp", -1)])
        api_logs.create_index([("endpoint", 1), ("timestamp", -1)])
        api_logs.create_index([("depot_id", 1), ("timestamp", -1)])
        api_logs.create_index([("response_status", 1)])
    except PyMongoError as e:
        logger.error("Error creating MongoDB indexes: %s", e)


def log_api_request(endpoint, method, user_id, depot_id, request_params,
                    response_status, execution_time_ms, conflicts=None):
    """
    Log an API request to MongoDB.

    Args:
        endpoint: API endpoint path
        method: HTTP method (GET, POST, etc.)
        user_id: ID of the authenticated user
        depot_id: depot of the operator, if any
        request_params: query parameters or JSON body of the request
        response_status: HTTP response status code
        execution_time_ms: Execution time in milliseconds
        conflicts: conflict messages of a rejected schedule write (optional)
    """
    db = get_mongo_db()
    if db is None:
        return

    log_entry = {
        "endpoint": endpoint,
        "method": method,
        "user_id": user_id,
        "depot_id": depot_id,
        "request_params": request_params,
        "response_status": response_status,
        "execution_time_ms": execution_time_ms,
        "timestamp": datetime.now(timezone.utc)
    }

    if conflicts:
        log_entry["conflicts"] = conflicts

    try:
        db.api_logs.insert_one(log_entry)
    except PyMongoError as e:
        logger.error("Error logging to MongoDB: %s", e)


def is_mongodb_available():
    """Check if MongoDB is available."""
    if _mongo_available is not None:
        return _mongo_available

    get_mongo_db()
    return _mongo_available or False
