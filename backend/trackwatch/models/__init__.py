from trackwatch.models.alert_map import AlertMap
from trackwatch.models.alert_subscription import AlertSubscription
from trackwatch.models.api_token import ApiToken
from trackwatch.models.daily_email import DailyEmail
from trackwatch.models.driver_notification import DriverNotification
from trackwatch.models.map_leaderboard_cache import MapLeaderboardCache
from trackwatch.models.map_position import MapPosition
from trackwatch.models.map_search_job import MapSearchJob
from trackwatch.models.notification_history import NotificationHistory
from trackwatch.models.user import User

__all__ = [
    "AlertMap",
    "AlertSubscription",
    "ApiToken",
    "DailyEmail",
    "DriverNotification",
    "MapLeaderboardCache",
    "MapPosition",
    "MapSearchJob",
    "NotificationHistory",
    "User",
]
