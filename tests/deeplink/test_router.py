"""Tests for deep-link routing.

Covers event emission, login completion through a wired session manager,
delivery from foreign threads and resilience to malformed URLs.
"""

import asyncio
import threading
from unittest.mock import AsyncMock, Mock

import pytest

from nativeauth.auth.models.errors import DeepLinkError, InvalidCodeError
from nativeauth.auth.models.session import SessionStatus
from nativeauth.deeplink.events import DeepLinkEvent
from nativeauth.deeplink.router import DeepLinkRouter


class TestRouteUrl:
    def setup_method(self):
        self.router = DeepLinkRouter()
        self.auth_handler = AsyncMock()
        self.link_handler = AsyncMock()
        self.router.callbacks.on_auth_callback(self.auth_handler)
        self.router.callbacks.on_deep_link(self.link_handler)

    async def test_auth_callback_emits_both_events(self) -> None:
        # Arrange
        url = "nativeauth://auth/callback?code=abc&state=xyz"

        # Act
        event = await self.router.route_url(url)

        # Assert
        self.auth_handler.assert_awaited_once()
        data = self.auth_handler.call_args[0][0]
        assert data.code == "abc"
        assert data.state == "xyz"
        assert data.error is None

        self.link_handler.assert_awaited_once_with(event)
        assert event.url == url
        assert event.parsed_params == {"code": "abc", "state": "xyz"}

    async def test_generic_link_emits_only_deep_link_event(self) -> None:
        # Act
        event = await self.router.route_url("nativeauth://settings/profile?tab=security")

        # Assert
        self.auth_handler.assert_not_awaited()
        self.link_handler.assert_awaited_once()
        assert isinstance(event, DeepLinkEvent)
        assert event.parsed_params == {"tab": "security"}

    async def test_callback_path_without_code_is_still_auth_callback(self) -> None:
        # Act
        await self.router.route_url(
            "nativeauth://auth/callback?error=access_denied&state=xyz"
        )

        # Assert
        data = self.auth_handler.call_args[0][0]
        assert data.code is None
        assert data.error == "access_denied"

    async def test_code_on_any_path_is_auth_callback(self) -> None:
        await self.router.route_url("https://app.example.com/done?code=abc")

        self.auth_handler.assert_awaited_once()

    async def test_failing_handler_does_not_stop_other_events(self) -> None:
        # Arrange
        self.auth_handler.side_effect = RuntimeError("ui crashed")

        # Act
        await self.router.route_url("nativeauth://auth/callback?code=abc&state=xyz")

        # Assert
        self.link_handler.assert_awaited_once()


class TestMessageLoop:
    @pytest.fixture(autouse=True)
    async def running_router(self):
        self.router = DeepLinkRouter()
        self.link_handler = AsyncMock()
        self.router.callbacks.on_deep_link(self.link_handler)
        yield
        await self.router.stop()

    async def test_delivered_urls_are_processed_in_order(self) -> None:
        # Arrange
        await self.router.start()

        # Act
        self.router.deliver_many(["nativeauth://a", "nativeauth://b"])
        await self.router.join()

        # Assert
        urls = [call.args[0].url for call in self.link_handler.await_args_list]
        assert urls == ["nativeauth://a", "nativeauth://b"]

    async def test_malformed_url_is_dropped_and_loop_survives(self) -> None:
        # Arrange
        await self.router.start()

        # Act
        self.router.deliver("")
        self.router.deliver("no scheme at all")
        self.router.deliver("nativeauth://ok")
        await self.router.join()

        # Assert
        assert self.router.running
        self.link_handler.assert_awaited_once()
        assert self.link_handler.call_args[0][0].url == "nativeauth://ok"

    async def test_delivery_from_another_thread(self) -> None:
        # Arrange
        await self.router.start()

        # Act
        thread = threading.Thread(
            target=self.router.deliver_many, args=(["nativeauth://from-os"],)
        )
        thread.start()
        thread.join()
        # Let the thread-safe put run before waiting on the queue
        await asyncio.sleep(0)
        await self.router.join()

        # Assert
        self.link_handler.assert_awaited_once()
        assert self.link_handler.call_args[0][0].url == "nativeauth://from-os"

    async def test_urls_delivered_before_start_are_kept(self) -> None:
        # Arrange
        self.router.deliver("nativeauth://early")

        # Act
        await self.router.start()
        await self.router.join()

        # Assert
        self.link_handler.assert_awaited_once()

    async def test_start_and_stop_are_idempotent(self) -> None:
        await self.router.start()
        await self.router.start()
        assert self.router.running

        await self.router.stop()
        await self.router.stop()
        assert not self.router.running


class TestInitialUrl:
    async def test_launch_url_is_exposed_and_routed_on_start(self) -> None:
        # Arrange
        router = DeepLinkRouter(initial_url="nativeauth://launch?ref=email")
        handler = AsyncMock()
        router.callbacks.on_deep_link(handler)

        # Act
        await router.start()
        await router.join()
        await router.stop()

        # Assert
        assert router.get_current_deep_link() == "nativeauth://launch?ref=email"
        handler.assert_awaited_once()

    def test_no_launch_url(self) -> None:
        assert DeepLinkRouter().get_current_deep_link() is None


class TestRegister:
    def test_register_hands_scheme_and_handler_to_source(self) -> None:
        # Arrange
        router = DeepLinkRouter()
        source = Mock()

        # Act
        router.register(source, "nativeauth")

        # Assert
        source.register.assert_called_once_with("nativeauth", router.deliver_many)

    def test_registration_failure_raises_deep_link_error(self) -> None:
        router = DeepLinkRouter()
        source = Mock()
        source.register.side_effect = OSError("scheme already claimed")

        with pytest.raises(DeepLinkError, match="nativeauth://"):
            router.register(source, "nativeauth")


class TestLoginCompletion:
    async def test_callback_completes_login_through_manager(
        self, manager, device_info
    ) -> None:
        # Arrange
        router = DeepLinkRouter(session_manager=manager)
        authenticated = AsyncMock()
        failed = AsyncMock()
        router.callbacks.on_session_authenticated(authenticated)
        router.callbacks.on_auth_failed(failed)
        session = await manager.generate_auth_session(device_info)

        # Act
        await router.route_url(
            f"nativeauth://auth/callback?code=abc&state={session.state}"
        )

        # Assert
        authenticated.assert_awaited_once()
        result = authenticated.call_args[0][0]
        assert result.id == session.id
        assert result.status is SessionStatus.AUTHENTICATED
        failed.assert_not_awaited()

    async def test_rejected_callback_emits_auth_failed(self, manager) -> None:
        # Arrange
        router = DeepLinkRouter(session_manager=manager)
        authenticated = AsyncMock()
        failed = AsyncMock()
        router.callbacks.on_session_authenticated(authenticated)
        router.callbacks.on_auth_failed(failed)

        # Act
        await router.route_url("nativeauth://auth/callback?code=abc&state=unknown")

        # Assert
        authenticated.assert_not_awaited()
        failed.assert_awaited_once()
        data, error = failed.call_args[0]
        assert data.code == "abc"
        assert isinstance(error, InvalidCodeError)

    async def test_generic_link_never_reaches_manager(self) -> None:
        manager = AsyncMock()
        router = DeepLinkRouter(session_manager=manager)

        await router.route_url("nativeauth://settings")

        manager.handle_auth_callback.assert_not_awaited()
