import redis
from django.conf import settings

# единый доступ к Redis.

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
