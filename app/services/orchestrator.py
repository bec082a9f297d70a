"""
Generation Orchestrator - The credit-metered request pipeline.

NO DICTIONARIES - Commands in, typed results out.

Order of steps for every generation request:
    quota -> rate limit -> validate -> reserve -> backend -> store -> sign
    -> record -> usage event

Nothing before the drone tour claim or the reservation needs undoing. From
there on, every side effect registers its compensation and every failure exit
runs the same Compensation, so a request either persists its generation record
or refunds its credits and removes what it stored. A failed drone tour also
gives back its tour claim.
"""

import asyncio
import time
from dataclasses import dataclass
from urllib.parse import quote
from uuid import uuid4

import httpx

from app.config import Settings
from app.exceptions import (
    DuplicateRefundError,
    GenerationError,
    OperationAccessDenied,
    QuotaExceededError,
    RateLimitedError,
    RequestValidationFailed,
)
from app.models.api import ArtifactKind, GenerationMode, PlanTier, RecordStatus
from app.models.domain import (
    AccountData,
    Artifact,
    CreditReservation,
    DroneTourCommand,
    DroneTourResult,
    GenerationRecordIntent,
    ImageEditCommand,
    ImageEditResult,
    MetricEvent,
    OperationStatus,
    Principal,
    SourceImage,
)
from app.observability.logging import get_logger, log_context
from app.observability.metrics import metrics
from app.services.artifact_store import ArtifactStore, build_artifact_path
from app.services.generation_backend import GenerationBackend
from app.services.image_input import fetch_source_image, parse_data_uri
from app.services.imaging import compress_image, sniff_image_type
from app.services.ledger import Ledger
from app.services.prompts import build_drone_prompt, build_prompt
from app.services.rate_limiter import RateLimiter
from app.services.records import RecordStore
from app.services.saga import Compensation, CompensationAction
from app.services.usage import UsageRecorder

logger = get_logger(__name__)

IMAGE_ENDPOINT = "generate"
DRONE_TOUR_ENDPOINT = "generate-drone-tour"
INLINE_UPLOAD_PLACEHOLDER = "inline-upload"
DRONE_TOUR_RESERVATION_REASON = "drone_tour"
MEDIA_PROXY_PATH = "/api/media-proxy"


@dataclass(frozen=True)
class PipelineConfig:
    """Pricing, limits and model ids the pipeline runs with."""

    image_edit_cost: int
    drone_tour_cost: int
    free_drone_tour_limit: int
    uncompressed_plans: tuple[str, ...]
    allowed_source_hosts: tuple[str, ...]
    max_image_bytes: int
    signed_url_ttl_seconds: int
    store_original_uploads: bool
    drone_tour_duration_seconds: int
    compression_quality: int
    compression_max_dimension: int
    image_model: str
    video_model: str
    estimated_cost_per_image_usd: float = 0.0
    estimated_cost_per_video_second_usd: float = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            image_edit_cost=settings.image_edit_cost,
            drone_tour_cost=settings.drone_tour_cost,
            free_drone_tour_limit=settings.free_drone_tour_limit,
            uncompressed_plans=tuple(settings.uncompressed_plan_names),
            allowed_source_hosts=tuple(settings.allowed_source_hosts),
            max_image_bytes=settings.max_image_bytes,
            signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
            store_original_uploads=settings.store_original_uploads,
            drone_tour_duration_seconds=settings.drone_tour_duration_seconds,
            compression_quality=settings.compression_quality,
            compression_max_dimension=settings.compression_max_dimension,
            image_model=settings.gemini_image_model,
            video_model=settings.gemini_video_model,
            estimated_cost_per_image_usd=settings.estimated_cost_per_image_usd,
            estimated_cost_per_video_second_usd=settings.estimated_cost_per_video_second_usd,
        )


def media_proxy_url(uri: str, content_type: str = "video/mp4") -> str:
    """Relative proxy URL through which the caller downloads a backend artifact."""
    return f"{MEDIA_PROXY_PATH}?uri={quote(uri, safe='')}&type={quote(content_type, safe='/')}"


@dataclass
class _Telemetry:
    """Mutable per-request counters for the usage event."""

    started: float
    input_bytes: int = 0
    output_bytes: int = 0
    credits_charged: int = 0

    @property
    def latency_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


class GenerationOrchestrator:
    """
    Runs generation requests against injected adapters.

    Stateless between requests; all shared state lives behind the ledger,
    the limiter, the store and the record repository.
    """

    def __init__(
        self,
        ledger: Ledger,
        rate_limiter: RateLimiter,
        artifact_store: ArtifactStore,
        backend: GenerationBackend,
        records: RecordStore,
        usage: UsageRecorder,
        http_client: httpx.AsyncClient,
        config: PipelineConfig,
    ) -> None:
        self._ledger = ledger
        self._rate_limiter = rate_limiter
        self._store = artifact_store
        self._backend = backend
        self._records = records
        self._usage = usage
        self._http = http_client
        self.config = config

    # ========================================================================
    # Image redesign
    # ========================================================================

    async def generate_image(self, principal: Principal, command: ImageEditCommand) -> ImageEditResult:
        """Synchronous image edit: reserve, generate, store, sign, record."""
        request_id = uuid4().hex
        telemetry = _Telemetry(started=time.perf_counter())
        saga = Compensation(request_id)

        with log_context(request_id=request_id, user_id=str(principal.user_id)):
            try:
                account = await self._ledger.get_account(principal.user_id)
                await self._admit(principal)

                source = await self._load_image_source(command)
                telemetry.input_bytes = source.size_bytes
                prompt = build_prompt(command.mode, command.style, command.custom_prompt)
                compress = self._should_compress(account)

                balance = await self._reserve(
                    saga, principal, self.config.image_edit_cost, request_id,
                    reason=f"image_edit:{command.mode.value}", endpoint=IMAGE_ENDPOINT,
                )
                telemetry.credits_charged = self.config.image_edit_cost

                generated = await self._backend.edit(prompt, source.data, source.mime_type)

                if compress:
                    output = await asyncio.to_thread(
                        compress_image,
                        generated,
                        quality=self.config.compression_quality,
                        max_dimension=self.config.compression_max_dimension,
                    )
                    output_type = "image/jpeg"
                else:
                    output = generated
                    output_type = sniff_image_type(generated)
                telemetry.output_bytes = len(output)

                generated_path, original_url = await self._store_artifacts(
                    saga, principal, source, output, output_type, compress
                )
                signed_url = await self._store.sign(
                    ArtifactKind.GENERATED, generated_path, self.config.signed_url_ttl_seconds
                )

                await self._records.create(
                    GenerationRecordIntent(
                        user_id=principal.user_id,
                        original_image_url=original_url,
                        generated_image_url=generated_path,
                        prompt_used=prompt,
                        generation_mode=command.mode,
                        is_compressed=compress,
                        status=RecordStatus.SUCCEEDED,
                        request_id=request_id,
                        property_id=command.property_id,
                    )
                )
                saga.discard()
            except Exception as e:
                await self._fail(saga, e, principal, IMAGE_ENDPOINT, self.config.image_model, telemetry)
                raise

            await self._record_usage(
                principal, IMAGE_ENDPOINT, self.config.image_model, telemetry,
                estimated_cost_usd=self.config.estimated_cost_per_image_usd,
            )
            logger.info(
                "image_generation_succeeded",
                path=generated_path,
                is_compressed=compress,
                credits_remaining=balance,
            )
            return ImageEditResult(
                signed_url=signed_url,
                credits_remaining=balance,
                is_compressed=compress,
                storage_path=generated_path,
            )

    # ========================================================================
    # Drone tour (asynchronous video job)
    # ========================================================================

    async def generate_drone_tour(
        self, principal: Principal, command: DroneTourCommand
    ) -> DroneTourResult:
        """Reserve credits, submit the video job and persist it as pending."""
        request_id = uuid4().hex
        telemetry = _Telemetry(started=time.perf_counter())
        saga = Compensation(request_id)

        with log_context(request_id=request_id, user_id=str(principal.user_id)):
            try:
                account = await self._ledger.get_account(principal.user_id)
                await self._claim_drone_tour(saga, account)
                await self._admit(principal)

                source = await fetch_source_image(
                    command.image_url,
                    self._http,
                    list(self.config.allowed_source_hosts),
                    self.config.max_image_bytes,
                )
                telemetry.input_bytes = source.size_bytes
                prompt = build_drone_prompt(command.custom_prompt)

                balance = await self._reserve(
                    saga, principal, self.config.drone_tour_cost, request_id,
                    reason=DRONE_TOUR_RESERVATION_REASON, endpoint=DRONE_TOUR_ENDPOINT,
                )
                telemetry.credits_charged = self.config.drone_tour_cost

                operation_name = await self._backend.submit(
                    prompt,
                    source.data,
                    source.mime_type,
                    self.config.drone_tour_duration_seconds,
                )

                await self._records.create(
                    GenerationRecordIntent(
                        user_id=principal.user_id,
                        original_image_url=command.image_url,
                        generated_image_url=operation_name,
                        prompt_used=prompt,
                        generation_mode=GenerationMode.DRONE_TOUR,
                        is_compressed=False,
                        status=RecordStatus.PENDING,
                        request_id=request_id,
                        property_id=command.property_id,
                    )
                )
                saga.discard()
            except Exception as e:
                await self._fail(
                    saga, e, principal, DRONE_TOUR_ENDPOINT, self.config.video_model, telemetry
                )
                raise

            await self._record_usage(
                principal, DRONE_TOUR_ENDPOINT, self.config.video_model, telemetry,
                estimated_cost_usd=(
                    self.config.estimated_cost_per_video_second_usd
                    * self.config.drone_tour_duration_seconds
                ),
            )
            logger.info(
                "drone_tour_submitted", operation_name=operation_name, credits_remaining=balance
            )
            return DroneTourResult(operation_name=operation_name, credits_remaining=balance)

    async def check_operation(self, principal: Principal, operation_name: str) -> OperationStatus:
        """
        Poll a video job owned by the caller.

        Unknown and foreign tokens are both denied before any backend call.
        A job that ends in failure is refunded by whichever poll performs the
        pending -> failed transition.
        """
        record = await self._records.find_by_operation(operation_name)
        if record is None or record.user_id != principal.user_id:
            logger.warning(
                "operation_access_denied",
                user_id=str(principal.user_id),
                known=record is not None,
            )
            raise OperationAccessDenied()

        if record.status == RecordStatus.SUCCEEDED and record.result_uri:
            return OperationStatus(
                name=operation_name, done=True, video_url=media_proxy_url(record.result_uri)
            )
        if record.status == RecordStatus.FAILED:
            return OperationStatus(
                name=operation_name, done=True, error_message=record.error_message
            )

        outcome = await self._backend.poll(operation_name)
        if not outcome.done:
            return OperationStatus(name=operation_name, done=False)

        if outcome.artifact_uri:
            await self._records.mark_succeeded(record.record_id, outcome.artifact_uri)
            return OperationStatus(
                name=operation_name, done=True, video_url=media_proxy_url(outcome.artifact_uri)
            )

        message = outcome.error_message or "Video generation failed"
        transitioned = await self._records.mark_failed(record.record_id, message)
        if transitioned and record.request_id:
            await self._refund_failed_job(principal, record.request_id)

        return OperationStatus(
            name=operation_name,
            done=True,
            error_code=outcome.error_code,
            error_message=message,
        )

    # ========================================================================
    # Steps
    # ========================================================================

    async def _admit(self, principal: Principal) -> None:
        decision = await self._rate_limiter.allow(principal.rate_limit_key)
        if not decision.allowed:
            retry_after = max(1, decision.reset_at - int(time.time()))
            raise RateLimitedError(retry_after_seconds=retry_after)

    async def _claim_drone_tour(self, saga: Compensation, account: AccountData) -> None:
        """Count the tour against the account before anything is charged."""
        limit = self.config.free_drone_tour_limit if account.plan == PlanTier.FREE else None
        if not await self._ledger.claim_drone_tour(account.account_id, limit):
            raise QuotaExceededError(
                f"Free plan users can generate only {self.config.free_drone_tour_limit} "
                "drone tour(s). Upgrade to generate more.",
                balance=account.credits_remaining,
            )

        async def release() -> None:
            await self._ledger.release_drone_tour(account.account_id)

        saga.register("release_drone_tour", release)

    def _should_compress(self, account: AccountData) -> bool:
        return account.plan.value not in self.config.uncompressed_plans

    async def _load_image_source(self, command: ImageEditCommand) -> SourceImage:
        if command.image_base64:
            return await asyncio.to_thread(
                parse_data_uri, command.image_base64, self.config.max_image_bytes
            )
        if not command.image_url:
            raise RequestValidationFailed("Either imageBase64 or imageUrl is required")
        return await fetch_source_image(
            command.image_url,
            self._http,
            list(self.config.allowed_source_hosts),
            self.config.max_image_bytes,
        )

    async def _reserve(
        self,
        saga: Compensation,
        principal: Principal,
        amount: int,
        request_id: str,
        reason: str,
        endpoint: str,
    ) -> int:
        """Debit credits and register the guarded refund."""
        reservation = CreditReservation(
            account_id=principal.user_id, amount=amount, request_id=request_id
        )
        balance = await self._ledger.reserve(principal.user_id, amount, request_id, reason)
        reservation.mark_reserved(balance)
        metrics.record_reservation(endpoint, amount)

        async def refund() -> None:
            if not reservation.claim_refund():
                return
            try:
                await self._ledger.refund(
                    reservation.account_id,
                    reservation.amount,
                    reservation.request_id,
                    reason=f"compensation:{reason}",
                )
            except DuplicateRefundError:
                logger.info("refund_already_recorded", request_id=reservation.request_id)
                return
            metrics.record_refund(endpoint, reservation.amount)

        saga.register("refund", refund)
        return balance

    async def _store_artifacts(
        self,
        saga: Compensation,
        principal: Principal,
        source: SourceImage,
        output: bytes,
        output_type: str,
        compressed: bool,
    ) -> tuple[str, str]:
        """
        Upload the generated image (and the inline original when configured).

        Returns (generated_path, original_image_url). Every successful put is
        registered for removal even when its sibling failed.
        """
        timestamp_ms = int(time.time() * 1000)
        generated_path = build_artifact_path(
            principal.user_id,
            output_type,
            suffix="_compressed" if compressed else "",
            timestamp_ms=timestamp_ms,
        )
        uploads = [
            (ArtifactKind.GENERATED, generated_path, output, output_type),
        ]

        if source.origin_url:
            original_url = source.origin_url
        elif self.config.store_original_uploads:
            original_url = build_artifact_path(
                principal.user_id, source.mime_type, suffix="_input", timestamp_ms=timestamp_ms
            )
            uploads.append((ArtifactKind.ORIGINAL, original_url, source.data, source.mime_type))
        else:
            original_url = INLINE_UPLOAD_PLACEHOLDER

        results = await asyncio.gather(
            *(self._store.put(kind, path, data, ctype) for kind, path, data, ctype in uploads),
            return_exceptions=True,
        )

        first_error: BaseException | None = None
        for result in results:
            if isinstance(result, Artifact):
                saga.register(f"remove_{result.kind.value}", self._removal(result))
            elif isinstance(result, BaseException) and first_error is None:
                first_error = result

        if first_error is not None:
            raise first_error
        return generated_path, original_url

    def _removal(self, artifact: Artifact) -> CompensationAction:
        async def remove() -> None:
            await self._store.remove(artifact.kind, [artifact.path])

        return remove

    async def _refund_failed_job(self, principal: Principal, request_id: str) -> None:
        try:
            await self._ledger.refund(
                principal.user_id,
                self.config.drone_tour_cost,
                request_id,
                reason="video_job_failed",
            )
        except DuplicateRefundError:
            logger.info("refund_already_recorded", request_id=request_id)
            return
        except Exception as e:
            metrics.record_compensation_failure("refund")
            logger.error(
                "video_job_refund_failed",
                request_id=request_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return
        metrics.record_refund(DRONE_TOUR_ENDPOINT, self.config.drone_tour_cost)

    async def _fail(
        self,
        saga: Compensation,
        error: Exception,
        principal: Principal,
        endpoint: str,
        model: str,
        telemetry: _Telemetry,
    ) -> None:
        """Single failure exit: compensate, then record the usage event."""
        failed_steps = await saga.run(reason=type(error).__name__)
        if isinstance(error, RateLimitedError):
            error_message = "Rate limit"
        else:
            error_message = getattr(error, "message", None) or str(error) or type(error).__name__
        error_type = type(error).__name__ if isinstance(error, GenerationError) else "UnexpectedError"

        if isinstance(error, GenerationError):
            logger.warning(
                "generation_failed",
                endpoint=endpoint,
                error_type=type(error).__name__,
                error=error_message,
                failed_compensations=failed_steps,
            )
        else:
            logger.exception(
                "generation_failed_unexpectedly",
                endpoint=endpoint,
                error_type=type(error).__name__,
                failed_compensations=failed_steps,
            )

        await self._usage.record(
            MetricEvent(
                endpoint=endpoint,
                model=model,
                success=False,
                latency_ms=telemetry.latency_ms,
                user_id=principal.user_id,
                error_message=error_message,
                error_type=error_type,
                input_bytes=telemetry.input_bytes,
                output_bytes=telemetry.output_bytes,
                credits_charged=0,
            )
        )

    async def _record_usage(
        self,
        principal: Principal,
        endpoint: str,
        model: str,
        telemetry: _Telemetry,
        estimated_cost_usd: float,
    ) -> None:
        await self._usage.record(
            MetricEvent(
                endpoint=endpoint,
                model=model,
                success=True,
                latency_ms=telemetry.latency_ms,
                user_id=principal.user_id,
                input_bytes=telemetry.input_bytes,
                output_bytes=telemetry.output_bytes,
                credits_charged=telemetry.credits_charged,
                estimated_cost_usd=estimated_cost_usd,
            )
        )
