"""Conversation state machine for the styling flow."""

import logging
from dataclasses import dataclass
from typing import assert_never

from leaderbot.app_logging import log_event
from leaderbot.domain.actions import (
    OutboundAction,
    QuickReply,
    SendImage,
    SendQuickReplies,
    SendText,
)
from leaderbot.domain.clock import Clock, utc_now
from leaderbot.domain.conversation import ConversationRecord, Stage
from leaderbot.domain.events import ControlAction, EventKind, InboundEvent
from leaderbot.domain.generation import GenerationError, GenerationErrorKind
from leaderbot.domain.styles import StyleConfig, parse_style, style_configs
from leaderbot.services.conversations import ConversationStore
from leaderbot.services.generation import ImageGenerator
from leaderbot.services.privacy import to_log_user
from leaderbot.services.quota import QuotaGate
from leaderbot.texts import normalize_lang, t

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Reply:
    """Builds outbound actions for one recipient in their language."""

    recipient_id: str
    lang: str | None

    def text(self, key: str, **params: object) -> SendText:
        return SendText(self.recipient_id, t(self.lang, key, **params))

    def prompt(
        self, key: str, replies: list[QuickReply], **params: object
    ) -> OutboundAction:
        text = t(self.lang, key, **params)
        if not replies:
            return SendText(self.recipient_id, text)
        return SendQuickReplies(self.recipient_id, text, replies)

    def image(self, url: str) -> SendImage:
        return SendImage(self.recipient_id, url)


def quick_replies_for(stage: Stage, lang: str | None) -> list[QuickReply]:
    """Return the quick replies offered in a stage."""
    match stage:
        case Stage.IDLE:
            return [
                QuickReply(t(lang, "button_what_is_this"), ControlAction.HELP),
                QuickReply(t(lang, "button_privacy"), ControlAction.PRIVACY),
            ]
        case Stage.AWAITING_STYLE:
            return [QuickReply(style.label, style.payload) for style in style_configs()]
        case Stage.RESULT_READY:
            return [
                QuickReply(t(lang, "button_new_style"), ControlAction.CHOOSE_STYLE),
                QuickReply(t(lang, "button_download"), ControlAction.DOWNLOAD),
                QuickReply(t(lang, "button_privacy"), ControlAction.PRIVACY),
            ]
        case Stage.FAILURE:
            return [
                QuickReply(t(lang, "button_retry"), ControlAction.RETRY),
                QuickReply(t(lang, "button_other_style"), ControlAction.CHOOSE_STYLE),
            ]
        case Stage.AWAITING_PHOTO | Stage.PROCESSING:
            return []
        case _:
            assert_never(stage)


@dataclass
class ConversationOrchestrator:
    """Interpret inbound events and decide outbound actions.

    Generation is single-flight per user: the store's compare-and-set into
    PROCESSING decides which event runs the provider call, and every other
    event for that user gets an "already working" reply until it finishes.
    """

    store: ConversationStore
    quota: QuotaGate
    generator: ImageGenerator
    clock: Clock = utc_now
    privacy_policy_url: str = "https://leaderbot.example/privacy"

    async def handle(self, event: InboundEvent, user_key: str) -> list[OutboundAction]:
        """Apply one event to the user's conversation and return actions."""
        now = self.clock()
        record = self.store.get_or_create(user_key, now)
        if event.locale:
            lang = normalize_lang(event.locale)
            if lang != record.preferred_lang:
                record = self.store.set_preferred_lang(user_key, lang, now)
        reply = _Reply(event.sender_id, record.preferred_lang)

        match event.kind:
            case EventKind.PHOTO:
                return await self._on_photo(event, record, reply)
            case EventKind.STYLE:
                return await self._on_style(event, record, reply)
            case EventKind.CONTROL:
                return await self._on_control(event, record, reply)
            case EventKind.TEXT:
                return self._on_text(record, reply)
            case EventKind.ACK:
                log_event(logger, "ack_ignored", ack=event.ack)
                return []
            case _:
                assert_never(event.kind)

    async def _on_photo(
        self, event: InboundEvent, record: ConversationRecord, reply: _Reply
    ) -> list[OutboundAction]:
        if not event.photo_url:
            return self._on_text(record, reply)
        if record.stage is Stage.PROCESSING:
            return [reply.text("processing_blocked")]
        pending = parse_style(record.selected_style)
        updated = self.store.set_photo(record.user_key, event.photo_url, self.clock())
        if record.stage is Stage.AWAITING_PHOTO and pending is not None:
            return await self._generate(updated, pending, reply)
        replies = quick_replies_for(Stage.AWAITING_STYLE, reply.lang)
        return [reply.prompt("style_picker", replies)]

    async def _on_style(
        self, event: InboundEvent, record: ConversationRecord, reply: _Reply
    ) -> list[OutboundAction]:
        if record.stage is Stage.PROCESSING:
            return [reply.text("processing_blocked")]
        style = parse_style(event.style)
        if style is None:
            return self._on_text(record, reply)
        if not record.last_photo_url:
            self.store.request_photo(
                record.user_key, style=style.name, now=self.clock()
            )
            return [reply.text("style_without_photo")]
        return await self._generate(record, style, reply)

    async def _on_control(  # noqa: PLR0911
        self, event: InboundEvent, record: ConversationRecord, reply: _Reply
    ) -> list[OutboundAction]:
        control = event.control
        if control is ControlAction.PRIVACY:
            return [reply.text("privacy", link=self.privacy_policy_url)]
        if control is ControlAction.ABOUT:
            return [reply.text("about")]
        if record.stage is Stage.PROCESSING:
            return [reply.text("processing_blocked")]
        if control in {ControlAction.HELP, ControlAction.GET_STARTED}:
            replies = quick_replies_for(record.stage, reply.lang)
            return [reply.prompt("flow_explanation", replies)]
        if control is ControlAction.RETRY:
            style = parse_style(record.selected_style)
            if record.last_photo_url and style is not None:
                return await self._generate(record, style, reply)
            return self._choose_style(record, reply)
        if control is ControlAction.CHOOSE_STYLE:
            return self._choose_style(record, reply)
        if control is ControlAction.DOWNLOAD:
            if record.last_generated_url:
                return [reply.image(record.last_generated_url), reply.text("hd_ready")]
            return [reply.text("hd_unavailable")]
        return self._on_text(record, reply)

    def _on_text(
        self, record: ConversationRecord, reply: _Reply
    ) -> list[OutboundAction]:
        replies = quick_replies_for(record.stage, reply.lang)
        match record.stage:
            case Stage.IDLE:
                return [reply.prompt("flow_explanation", replies)]
            case Stage.AWAITING_PHOTO:
                return [reply.text("text_without_photo")]
            case Stage.AWAITING_STYLE:
                return [reply.prompt("style_picker", replies)]
            case Stage.PROCESSING:
                return [reply.text("processing_blocked")]
            case Stage.RESULT_READY:
                return [reply.prompt("result_ready", replies)]
            case Stage.FAILURE:
                return [reply.prompt("failure_options", replies)]
            case _:
                assert_never(record.stage)

    def _choose_style(
        self, record: ConversationRecord, reply: _Reply
    ) -> list[OutboundAction]:
        if record.last_photo_url:
            self.store.set_stage(record.user_key, Stage.AWAITING_STYLE, self.clock())
            replies = quick_replies_for(Stage.AWAITING_STYLE, reply.lang)
            return [reply.prompt("style_picker", replies)]
        self.store.request_photo(record.user_key, now=self.clock())
        return [reply.text("text_without_photo")]

    async def _generate(
        self, record: ConversationRecord, style: StyleConfig, reply: _Reply
    ) -> list[OutboundAction]:
        user_key = record.user_key
        now = self.clock()
        if not self.quota.can_generate(user_key, now):
            self.store.set_selected_style(user_key, style.name, now)
            log_event(logger, "quota_exhausted", user=to_log_user(user_key))
            return [reply.text("quota_reached", limit=self.quota.daily_limit)]
        processing = self.store.begin_processing(user_key, style.name, now)
        if processing is None:
            return [reply.text("processing_blocked")]

        actions: list[OutboundAction] = [
            reply.text("generating", style=style.name.capitalize())
        ]
        try:
            result = await self.generator.generate(
                style.name, processing.last_photo_url, user_key
            )
        except GenerationError as exc:
            actions.append(self._on_generation_failure(exc, user_key, style, reply))
            return actions
        except Exception as exc:
            logger.exception(
                "Unexpected generation failure for user %s", to_log_user(user_key)
            )
            error = GenerationError(GenerationErrorKind.PROVIDER_ERROR, str(exc))
            actions.append(self._on_generation_failure(error, user_key, style, reply))
            return actions

        finished = self.clock()
        self.quota.increment(user_key, finished)
        self.store.set_result(user_key, result.image_url, finished)
        actions.append(reply.image(result.image_url))
        actions.append(
            reply.prompt("success", quick_replies_for(Stage.RESULT_READY, reply.lang))
        )
        return actions

    def _on_generation_failure(
        self,
        error: GenerationError,
        user_key: str,
        style: StyleConfig,
        reply: _Reply,
    ) -> OutboundAction:
        """Translate a generation error into one message and a transition."""
        now = self.clock()
        log_event(
            logger,
            "generation_failed",
            logging.WARNING,
            user=to_log_user(user_key),
            style=style.name,
            kind=str(error.kind),
            detail=str(error),
        )
        failure_replies = quick_replies_for(Stage.FAILURE, reply.lang)
        match error.kind:
            case GenerationErrorKind.MISSING_INPUT_IMAGE:
                self.store.request_photo(user_key, style=style.name, now=now)
                return reply.text("missing_input_image")
            case GenerationErrorKind.INVALID_INPUT:
                self.store.set_failure(user_key, style.name, now)
                return reply.text("failure")
            case (
                GenerationErrorKind.MISSING_PROVIDER_CREDENTIAL
                | GenerationErrorKind.MISSING_BASE_URL
            ):
                logger.error("Generation is misconfigured: %s (%s)", error.kind, error)
                self.store.set_failure(user_key, style.name, now)
                return reply.prompt("generation_unavailable", failure_replies)
            case GenerationErrorKind.GENERATION_TIMEOUT:
                self.store.set_failure(user_key, style.name, now)
                return reply.prompt("generation_timeout", failure_replies)
            case GenerationErrorKind.PROVIDER_ERROR:
                self.store.set_failure(user_key, style.name, now)
                return reply.prompt("generation_generic_failure", failure_replies)
            case _:
                assert_never(error.kind)
