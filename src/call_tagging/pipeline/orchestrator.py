"""
BatchOrchestrator: 一次 Pass 的编排。

每轮: SELECT → GROUP (按 prompt 文本) → CLASSIFY (组间串行, 组内并发) → PERSIST
停止: 累计 persisted ≥ ceiling, 或本轮选中数 < 请求数 (已取完)。轮间 cooldown。

- 单条失败 (分类 / 落库) 只减少本轮产出, 不中止 pass; 下个 pass 重新选中
- 同一 pass 内按 id 向后翻页, 失败项不会在本 pass 被重复选中
- SelectionError / LLMCircuitOpenError 中止 pass, 由调度器兜底
"""
from __future__ import annotations
import asyncio
import time

from call_tagging.common.exceptions import (
    LLMCircuitOpenError, PersistenceError, PromptMissingError,
)
from call_tagging.pipeline.classifier import ClassifierClient, is_circuit_failure
from call_tagging.pipeline.encoder import TierEncoder
from call_tagging.pipeline.ir import FailedCall, PassSummary, WorkItem
from call_tagging.pipeline.selector import WorkSelector
from call_tagging.pipeline.vocabulary import TagVocabulary
from call_tagging.pipeline.writer import ResultWriter
from call_tagging.prompts.service import PromptResolver
import structlog

logger = structlog.get_logger()


class BatchOrchestrator:
    def __init__(
        self,
        session_factory,
        selector: WorkSelector,
        resolver: PromptResolver,
        classifier: ClassifierClient,
        writer: ResultWriter,
        encoder: TierEncoder | None = None,
        batch_size: int = 5,
        ceiling: int = 5000,
        cooldown_seconds: float = 2.0,
        sleep=asyncio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._selector = selector
        self._resolver = resolver
        self._classifier = classifier
        self._writer = writer
        self._encoder = encoder or TierEncoder()
        self._batch_size = max(1, batch_size)
        self._ceiling = ceiling
        self._cooldown = cooldown_seconds
        self._sleep = sleep

    @property
    def classifier(self) -> ClassifierClient:
        return self._classifier

    async def run_pass(self) -> PassSummary:
        start = time.monotonic()
        summary = PassSummary()

        async with self._session_factory() as db:
            vocabulary = await TagVocabulary.load(db)
        prompts = await self._resolver.resolve_all()
        if not prompts:
            raise PromptMissingError("No active campaign prompts; nothing can be classified")
        self._classifier.use_vocabulary(vocabulary)

        logger.info("pass_start",
                    batch_size=self._batch_size, ceiling=self._ceiling,
                    campaigns=len(prompts), tags=len(vocabulary))

        last_id: int | None = None
        try:
            while True:
                requested = min(self._batch_size, self._ceiling - summary.persisted)
                if requested <= 0:
                    summary.stop_reason = "ceiling"
                    break

                summary.rounds += 1
                logger.info("round_start", round=summary.rounds,
                            requested=requested, persisted=summary.persisted)
                items = await self._selector.select_batch(requested, after_id=last_id)
                summary.selected += len(items)
                logger.info("round_selected", round=summary.rounds,
                            ids=[i.id for i in items])
                if not items:
                    summary.stop_reason = "exhausted"
                    break
                last_id = max(i.id for i in items)

                await self._run_round(items, prompts, vocabulary, summary)

                if summary.persisted >= self._ceiling:
                    summary.stop_reason = "ceiling"
                    break
                if len(items) < requested:
                    summary.stop_reason = "exhausted"
                    break
                await self._sleep(self._cooldown)
        except Exception as e:
            summary.stop_reason = f"aborted:{getattr(e, 'code', type(e).__name__)}"
            logger.error("pass_aborted", error=str(e), **summary.to_dict())
            raise
        finally:
            summary.elapsed_ms = int((time.monotonic() - start) * 1000)

        logger.info("pass_complete", **summary.to_dict())
        return summary

    async def _run_round(
        self,
        items: list[WorkItem],
        prompts: dict[str, str],
        vocabulary: TagVocabulary,
        summary: PassSummary,
    ) -> None:
        groups: dict[str, list[WorkItem]] = {}
        for item in items:
            prompt = prompts.get(item.campaign_id) if item.campaign_id else None
            if prompt is None:
                summary.skipped_no_prompt += 1
                logger.info("prompt_missing_skipped",
                            call_id=item.id, campaign_id=item.campaign_id)
                continue
            groups.setdefault(prompt, []).append(item)

        circuit_open = False
        for prompt, group in groups.items():
            outcome = await self._classifier.classify_group(group, prompt)
            logger.info("group_classified",
                        size=len(group), successful=len(outcome.successful),
                        failed=len(outcome.failed))

            for call in outcome.successful:
                encoded = self._encoder.encode_call(call, vocabulary)
                try:
                    await self._writer.persist(
                        call.call_id, encoded, self._encoder.tag_assignments(encoded))
                except PersistenceError as e:
                    summary.persist_failed += 1
                    logger.error("persist_failed", call_id=call.call_id, error=str(e))
                    await self._record_failure(FailedCall(call.call_id, str(e), e.code))
                    continue
                summary.persisted += 1
                logger.info("call_persisted",
                            call_id=call.call_id,
                            tier1=call.result.primary_value(1),
                            tier5=call.result.primary_value(5),
                            ms=call.processing_time_ms)

            for failed in outcome.failed:
                summary.classify_failed += 1
                if is_circuit_failure(failed):
                    circuit_open = True
                else:
                    await self._record_failure(failed)

            if circuit_open:
                raise LLMCircuitOpenError("Classifier provider unavailable, pass aborted")

    async def _record_failure(self, failed: FailedCall) -> None:
        try:
            await self._writer.record_failure(failed.call_id, f"{failed.error_code}: {failed.error}")
        except PersistenceError as e:
            logger.warning("failure_record_failed", call_id=failed.call_id, error=str(e))
