"""Live agent backend: Engagement Cloud consumer chat API."""

from typing import Any

import httpx
from loguru import logger

from relaybot.agents.base import AgentBridge
from relaybot.agents.poller import PollerRegistry
from relaybot.bus.events import AgentAction, AgentMessageType, RequestSpec
from relaybot.config.schema import LiveAgentConfig
from relaybot.errors import BackendCallError, CorrelationLost, MissingField
from relaybot.session.store import Session, SessionStore

AUTHENTICATE_PATH = "serviceApi/resources/latest/chatAuthenticate"

MESSAGE_POSTED = "RNEngagementMessagePostedMessage"
PARTICIPANT_ADDED = "RNEngagementParticipantAddedMessage"
WAIT_INFO_CHANGED = "RNEngagementWaitInformationChangedMessage"
CONCLUDED = "RNEngagementConcludedMessage"

KNOWN_EVENTS = (MESSAGE_POSTED, PARTICIPANT_ADDED, WAIT_INFO_CHANGED, CONCLUDED)

ENDPOINTS = {
    AgentAction.start_chat: "requestEngagement",
    AgentAction.post_message: "postMessage",
    AgentAction.end_chat: "concludeEngagement",
}

REQUIRED_AUTH_KEYS = ("domain", "poolId", "jwt", "chatSiteName")


def _wait_message(event: dict[str, Any]) -> str:
    return (
        f"You are number ({event.get('positionString')}) in the queue, please be patient "
        f"our agents will serve you in ({event.get('averageWaitTimeSecondsString')}) seconds"
    )


class LiveAgentBridge(AgentBridge):
    """
    Bridge to a live-agent backend that only exposes pull semantics.

    A chat request first authenticates the user to obtain a bearer token,
    pool and chat site; every later call reuses those values from the
    session. Once the engagement exists a poller fetches new events.
    """

    name = "live"

    def __init__(
        self,
        config: LiveAgentConfig,
        store: SessionStore,
        pollers: PollerRegistry,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.config = config
        self.store = store
        self.pollers = pollers
        self.timeout = timeout
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._own_client:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def to_agent_shape(self, payload: dict[str, Any], action: AgentAction) -> dict[str, Any]:
        action = AgentAction(action)
        user_id = _user_id(payload)

        if action == AgentAction.start_chat:
            auth = await self.authenticate(payload)
            await self.store.merge(user_id, {"backend_auth": auth})
            return payload

        if action == AgentAction.end_chat:
            await self.pollers.stop(user_id)

        return {"body": payload.get("message"), "botUser": payload.get("botUser")}

    async def build_call(self, payload: dict[str, Any], action: AgentAction) -> RequestSpec:
        action = AgentAction(action)
        user_id = _user_id(payload)
        session = await self._require_session(user_id, action.value)
        auth = _require_auth(session)

        headers = {"Authorization": f"Bearer {auth['jwt']}"}
        if action == AgentAction.start_chat:
            body: dict[str, Any] = {}
        else:
            if not auth.get("sessionId"):
                raise MissingField(f"No backend session id for user [{user_id}]", user_id=user_id)
            headers["sessionId"] = auth["sessionId"]
            body = {k: v for k, v in payload.items() if k != "botUser"}

        return RequestSpec(
            url=_base_url(auth) + ENDPOINTS[action],
            headers=headers,
            params={"pool": auth["poolId"]},
            json=body,
        )

    async def on_call_result(
        self,
        payload: dict[str, Any],
        result: Any,
        action: AgentAction,
        status_code: int,
    ) -> None:
        if AgentAction(action) != AgentAction.start_chat:
            return

        user_id = _user_id(payload)
        backend_session_id = result.get("sessionId") if isinstance(result, dict) else None
        if not backend_session_id:
            raise BackendCallError(
                "Engagement request returned no sessionId",
                status_code=status_code,
                body=result,
                user_id=user_id,
            )

        session = await self._require_session(user_id, "requestEngagement result")
        auth = {**session.backend_auth, "sessionId": backend_session_id}
        await self.store.merge(user_id, {"backend_auth": auth})
        await self.pollers.start(user_id)

    async def authenticate(self, profile: dict[str, Any]) -> dict[str, Any]:
        """
        Exchange the user's profile for backend credentials.

        Only HTTP 201 counts as success. There is no retry: any other answer
        raises BackendCallError carrying the backend's body.
        """
        cfg = self.config
        body = {
            "authUserName": profile.get("email"),
            "interfaceId": cfg.interface_id,
            "question": profile.get("message"),
            "firstName": profile.get("firstName"),
            "lastName": profile.get("lastName"),
            "emailAddress": profile.get("email"),
            "queueId": cfg.queue_id,
            "productId": cfg.product_id,
            "incidentId": cfg.incident_id,
            "incidentType": cfg.incident_type,
            "resumeType": cfg.resume_type,
            "mediaList": cfg.media_list,
        }

        logger.info("Authenticating user chat request...")
        url = f"{cfg.base_uri.rstrip('/')}/{AUTHENTICATE_PATH}"
        try:
            response = await self.client.post(
                url,
                json=body,
                auth=(cfg.service_user, cfg.service_password),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise BackendCallError(f"Error authenticating user against agent backend: {e}") from e

        if response.status_code != 201:
            detail = response.text[:500]
            logger.error(f"Chat authentication failed ({response.status_code}): {detail}")
            raise BackendCallError(
                f"Error authenticating user against agent backend: {detail}",
                status_code=response.status_code,
                body=detail,
            )

        data = response.json()
        logger.info("Chat request authentication successful")
        return {key: data.get(key) for key in REQUIRED_AUTH_KEYS}

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def pull_events(self, user_id: str) -> list[dict[str, Any]]:
        session = await self._require_session(user_id, "getMessages")
        auth = _require_auth(session)

        logger.debug("Fetching new messages for {}", user_id)
        try:
            response = await self.client.post(
                _base_url(auth) + "getMessages",
                params={"pool": auth["poolId"]},
                headers={
                    "Authorization": f"Bearer {auth['jwt']}",
                    "sessionId": auth.get("sessionId") or "",
                },
                json={},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise BackendCallError(
                f"getMessages failed with {e.response.status_code}",
                status_code=e.response.status_code,
                body=e.response.text[:500],
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise BackendCallError(f"getMessages failed: {e}") from e

        events = []
        for message in (data or {}).get("systemMessages") or []:
            if message.get("messageName") not in KNOWN_EVENTS:
                logger.warning("Ignoring unsupported backend message {}", message.get("messageName"))
                continue
            events.append({
                "botUserId": user_id,
                "sessionId": auth.get("sessionId"),
                "data": message,
            })
        return events

    async def from_agent_shape(self, event: dict[str, Any]) -> dict[str, Any] | None:
        message = (event or {}).get("data")
        if not message:
            return None

        user_id = event.get("botUserId")
        name = message.get("messageName")

        def shaped(msg_type: AgentMessageType, **fields: Any) -> dict[str, Any]:
            return {
                "type": msg_type.value,
                "payload": {
                    "botUser": {"userId": user_id},
                    "sessionId": event.get("sessionId"),
                    **fields,
                },
            }

        if name == MESSAGE_POSTED:
            body = message.get("body") or ""
            if body.startswith("/"):
                await self.pollers.stop(user_id)
                return shaped(AgentMessageType.agent_action, action=body[1:])
            return shaped(AgentMessageType.chat_message, message=body)

        if name == PARTICIPANT_ADDED:
            return shaped(AgentMessageType.accepted, message=message.get("greeting") or "")

        if name == WAIT_INFO_CHANGED:
            return shaped(AgentMessageType.accepted, message=_wait_message(message))

        if name == CONCLUDED:
            # Without a poller to stop the session is already gone; forward nothing.
            if not await self.pollers.stop(user_id):
                logger.warning("Dropping conclude event for {}: no active poller", user_id)
                return None
            return shaped(AgentMessageType.agent_left, message=message.get("reason"))

        logger.warning("Unsupported backend event {}, dropping", name)
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_session(self, user_id: str, operation: str) -> Session:
        session = await self.store.get(user_id)
        if session is None:
            raise CorrelationLost(user_id, operation)
        return session


def _user_id(payload: dict[str, Any]) -> str:
    user_id = ((payload or {}).get("botUser") or {}).get("userId")
    if not user_id:
        raise MissingField("Agent payload is missing botUser.userId")
    return user_id


def _require_auth(session: Session) -> dict[str, Any]:
    auth = session.backend_auth or {}
    missing = [key for key in REQUIRED_AUTH_KEYS if not auth.get(key)]
    if missing:
        raise MissingField(
            f"Backend auth for user [{session.user_id}] is missing {', '.join(missing)}",
            user_id=session.user_id,
        )
    return auth


def _base_url(auth: dict[str, Any]) -> str:
    return f"https://{auth['domain']}/engagement/api/consumer/{auth['chatSiteName']}/v1/"
