"""Tests for the remote agent gateway and the AMQP execution channel.

Test coverage:
- Classification of channel outcomes into success/unavailable/failed
- Reply envelope parsing
- read_file content decoding
- Queue naming per host
"""

import asyncio
import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import aio_pika
import pytest

from src.common.config import Config
from src.common.exceptions import (
    AgentTimeoutError,
    AgentUnavailableError,
    InvalidMessageFormatError,
    RemoteExecutionError,
)
from src.common.protocol import MessageEnvelope
from src.common.rabbitmq import control_node_queue_name
from src.control_node.channel import AmqpExecutionChannel
from src.control_node.gateway import RemoteAgentGateway, RemoteOutcome

from tests.conftest import CONTROL_NODE_ID


def _reply(type_: str, payload: dict) -> bytes:
    return MessageEnvelope(
        from_agent="control_node",
        to_agent="integration",
        type=type_,
        payload=payload,
    ).to_json().encode()


class TestGatewayClassification:
    """Every channel outcome maps to exactly one RemoteOutcome."""

    @pytest.mark.asyncio
    async def test_success_carries_payload(self, fake_channel):
        fake_channel.files["/srv/site.yml"] = b"- hosts: all\n"
        gateway = RemoteAgentGateway(fake_channel)

        result = await gateway.read_file(CONTROL_NODE_ID, "/srv/site.yml")

        assert result.outcome == RemoteOutcome.SUCCESS
        assert result.is_success
        assert result.payload == b"- hosts: all\n"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            AgentTimeoutError(),
            AgentUnavailableError(),
            asyncio.TimeoutError(),
            aio_pika.exceptions.AMQPConnectionError("broker gone"),
        ],
    )
    async def test_transport_errors_are_unavailable(self, fake_channel, error):
        fake_channel.trees["/srv/ansible"] = error
        gateway = RemoteAgentGateway(fake_channel)

        result = await gateway.list_tree(CONTROL_NODE_ID, "/srv/ansible")

        assert result.is_unavailable
        assert not result.is_failure
        assert result.payload is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [RemoteExecutionError("inventory not parseable"), InvalidMessageFormatError()],
    )
    async def test_remote_errors_are_failures(self, fake_channel, error):
        fake_channel.modules["ansible.inventory"] = error
        gateway = RemoteAgentGateway(fake_channel)

        result = await gateway.run_module(CONTROL_NODE_ID, "ansible.inventory", {"inventory": "/x"})

        assert result.is_failure
        assert result.message == error.message

    @pytest.mark.asyncio
    async def test_run_module_passes_empty_args_by_default(self, fake_channel):
        fake_channel.modules["test.ping"] = {"ping": "pong"}
        gateway = RemoteAgentGateway(fake_channel)

        await gateway.run_module(CONTROL_NODE_ID, "test.ping")

        assert fake_channel.calls == [("run_module", CONTROL_NODE_ID, ("test.ping", {}))]

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, fake_channel):
        fake_channel.files["/srv/site.yml"] = RuntimeError("bug")
        gateway = RemoteAgentGateway(fake_channel)

        with pytest.raises(RuntimeError):
            await gateway.read_file(CONTROL_NODE_ID, "/srv/site.yml")


class TestReplyParsing:
    """Test AmqpExecutionChannel._parse_reply."""

    def test_completed_result_returns_payload(self):
        body = _reply(
            "work_result",
            {"task_id": str(uuid4()), "status": "completed", "payload": {"name": "root"}},
        )

        assert AmqpExecutionChannel._parse_reply(body, CONTROL_NODE_ID) == {"name": "root"}

    def test_failed_result_raises_remote_error(self):
        body = _reply(
            "work_result",
            {"task_id": str(uuid4()), "status": "failed", "error_message": "No such file"},
        )

        with pytest.raises(RemoteExecutionError) as exc_info:
            AmqpExecutionChannel._parse_reply(body, CONTROL_NODE_ID)

        assert exc_info.value.message == "No such file"

    def test_error_envelope_raises_remote_error(self):
        body = _reply(
            "error",
            {"error_code": 5007, "error_message": "module crashed", "context": {"rc": 1}},
        )

        with pytest.raises(RemoteExecutionError) as exc_info:
            AmqpExecutionChannel._parse_reply(body, CONTROL_NODE_ID)

        assert exc_info.value.context == {"rc": 1}

    @pytest.mark.parametrize(
        "body",
        [
            b"not json",
            b'{"type": "work_result"}',
            _reply("work_result", {"status": "completed"}),
            _reply("work_result", {"task_id": str(uuid4()), "status": "failed"}),
        ],
    )
    def test_malformed_reply_raises_invalid_format(self, body):
        with pytest.raises(InvalidMessageFormatError):
            AmqpExecutionChannel._parse_reply(body, CONTROL_NODE_ID)


class TestAmqpChannelOperations:
    """Test operation-specific decoding with the RPC call mocked out."""

    @pytest.fixture
    def channel(self):
        return AmqpExecutionChannel(Config(remote_call_timeout_seconds=1))

    @pytest.mark.asyncio
    async def test_read_file_decodes_base64_content(self, channel):
        encoded = base64.b64encode(b"---\n- hosts: all\n").decode()
        with patch.object(channel, "_call", new=AsyncMock(return_value={"content": encoded})) as call:
            content = await channel.read_file(CONTROL_NODE_ID, "/srv/site.yml")

        assert content == b"---\n- hosts: all\n"
        call.assert_awaited_once_with(CONTROL_NODE_ID, "read_file", {"path": "/srv/site.yml"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"content": "!!not base64!!"}, None])
    async def test_read_file_rejects_bad_content(self, channel, payload):
        with patch.object(channel, "_call", new=AsyncMock(return_value=payload)):
            with pytest.raises(InvalidMessageFormatError):
                await channel.read_file(CONTROL_NODE_ID, "/srv/site.yml")

    @pytest.mark.asyncio
    async def test_list_tree_requires_mapping(self, channel):
        with patch.object(channel, "_call", new=AsyncMock(return_value=["not", "a", "node"])):
            with pytest.raises(InvalidMessageFormatError):
                await channel.list_tree(CONTROL_NODE_ID, "/srv/ansible")

    @pytest.mark.asyncio
    async def test_run_module_sends_module_and_args(self, channel):
        with patch.object(channel, "_call", new=AsyncMock(return_value={"ok": True})) as call:
            result = await channel.run_module(CONTROL_NODE_ID, "ansible.inventory", {"inventory": "/i"})

        assert result == {"ok": True}
        call.assert_awaited_once_with(
            CONTROL_NODE_ID,
            "run_module",
            {"module": "ansible.inventory", "args": {"inventory": "/i"}},
        )

    @pytest.mark.asyncio
    async def test_unreachable_broker_is_unavailable(self, channel):
        with patch(
            "src.control_node.channel.aio_pika.connect_robust",
            new=AsyncMock(side_effect=ConnectionRefusedError("refused")),
        ):
            with pytest.raises(AgentUnavailableError):
                await channel.connect()


class TestAmqpChannelCall:
    """Test the request/reply round trip over a mocked aio-pika channel."""

    @pytest.fixture
    def channel(self):
        channel = AmqpExecutionChannel(Config(remote_call_timeout_seconds=1))
        channel.channel = MagicMock(is_closed=False)
        channel.channel.default_exchange.publish = AsyncMock()
        channel.reply_queue = MagicMock()
        channel.reply_queue.name = "amq.gen-reply"
        return channel

    @pytest.mark.asyncio
    async def test_reply_resolved_by_correlation_id(self, channel):
        body = _reply(
            "work_result",
            {"task_id": str(uuid4()), "status": "completed", "payload": {"content": "LS0t"}},
        )

        async def answer(message, routing_key, mandatory):
            await channel._on_reply(SimpleNamespace(correlation_id="someone-else", body=b"{}"))
            await channel._on_reply(SimpleNamespace(correlation_id=message.correlation_id, body=body))

        channel.channel.default_exchange.publish.side_effect = answer

        payload = await channel._call(CONTROL_NODE_ID, "read_file", {"path": "/srv/site.yml"})

        assert payload == {"content": "LS0t"}
        assert channel._pending == {}
        message = channel.channel.default_exchange.publish.await_args.args[0]
        assert message.reply_to == "amq.gen-reply"
        assert MessageEnvelope.from_json(message.body).payload["work_type"] == "read_file"
        assert channel.channel.default_exchange.publish.await_args.kwargs == {
            "routing_key": "control_node.42",
            "mandatory": True,
        }

    @pytest.mark.asyncio
    async def test_error_reply_raises_remote_error(self, channel):
        body = _reply("error", {"error_code": 5007, "error_message": "module crashed"})

        async def answer(message, routing_key, mandatory):
            await channel._on_reply(SimpleNamespace(correlation_id=message.correlation_id, body=body))

        channel.channel.default_exchange.publish.side_effect = answer

        with pytest.raises(RemoteExecutionError):
            await channel._call(CONTROL_NODE_ID, "run_module", {"module": "m", "args": {}})

        assert channel._pending == {}

    @pytest.mark.asyncio
    async def test_no_reply_times_out(self, channel):
        channel.timeout_seconds = 0.05

        with pytest.raises(AgentTimeoutError) as exc_info:
            await channel._call(CONTROL_NODE_ID, "list_tree", {"path": "/srv/ansible"})

        assert exc_info.value.context["host_id"] == CONTROL_NODE_ID
        assert channel._pending == {}

    @pytest.mark.asyncio
    async def test_undeliverable_request_is_unavailable(self, channel):
        channel.channel.default_exchange.publish.side_effect = aio_pika.exceptions.DeliveryError(
            None, None
        )

        with pytest.raises(AgentUnavailableError):
            await channel._call(CONTROL_NODE_ID, "list_tree", {"path": "/srv/ansible"})

        assert channel._pending == {}

    @pytest.mark.asyncio
    async def test_late_reply_is_dropped(self, channel):
        await channel._on_reply(SimpleNamespace(correlation_id="gone", body=b"{}"))

        assert channel._pending == {}

    @pytest.mark.asyncio
    async def test_connect_consumes_replies(self):
        channel = AmqpExecutionChannel(Config(remote_call_timeout_seconds=1))
        reply_queue = MagicMock()
        reply_queue.consume = AsyncMock()
        amqp_channel = MagicMock(is_closed=False)
        amqp_channel.declare_queue = AsyncMock(return_value=reply_queue)
        connection = MagicMock()
        connection.channel = AsyncMock(return_value=amqp_channel)

        with patch(
            "src.control_node.channel.aio_pika.connect_robust",
            new=AsyncMock(return_value=connection),
        ):
            await channel.connect()
            await channel.connect()

        connection.channel.assert_awaited_once_with(publisher_confirms=True, on_return_raises=True)
        reply_queue.consume.assert_awaited_once_with(channel._on_reply, no_ack=True)
        assert channel.reply_queue is reply_queue


class TestQueueNaming:
    def test_default_prefix(self):
        assert control_node_queue_name(42) == "control_node.42"

    def test_custom_prefix(self):
        assert control_node_queue_name(7, "ansible") == "ansible.7"
