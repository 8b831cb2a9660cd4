from foodshare.models.user import User, Role, Capability, can
from foodshare.models.food import FoodListing
from foodshare.models.request import FoodRequest
from foodshare.models.chat import Chat, ChatParticipant, Message
from foodshare.models.rate_limit import RateLimitCounter
