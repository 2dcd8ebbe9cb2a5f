from aiogram import BaseMiddleware, Bot

from api.order_service import OrderService
from api.profile_service import ProfileService
from api.realtime import RealtimeHub
from api.rider_service import RiderService
from database.async_db import AsyncDatabase
from database.managers.user_link_manager import UserLinkManager
from utils.locks import ActionGuard
from utils.proof_capture import FlowRegistry
from utils.secrets import get_role


class ServiceMiddleware(BaseMiddleware):
    def __init__(
            self,
            db: AsyncDatabase,
            user_link_manager: UserLinkManager,
            order_service: OrderService,
            rider_service: RiderService,
            profile_service: ProfileService,
            realtime_hub: RealtimeHub,
            action_guard: ActionGuard,
            capture_flows: FlowRegistry,
            bot: Bot,
    ):
        super().__init__()
        self.db = db
        self.user_link_manager = user_link_manager
        self.order_service = order_service
        self.rider_service = rider_service
        self.profile_service = profile_service
        self.realtime_hub = realtime_hub
        self.action_guard = action_guard
        self.capture_flows = capture_flows
        self.bot = bot

    async def __call__(self, handler, event, data):
        data["db"] = self.db
        data["user_link_manager"] = self.user_link_manager
        data["order_service"] = self.order_service
        data["rider_service"] = self.rider_service
        data["profile_service"] = self.profile_service
        data["realtime_hub"] = self.realtime_hub
        data["action_guard"] = self.action_guard
        data["capture_flows"] = self.capture_flows
        data["bot"] = self.bot

        user = data.get("event_from_user")
        data["role"] = get_role(user.id) if user else "customer"

        return await handler(event, data)
