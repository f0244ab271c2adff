import logging
from pathlib import Path
from typing import List, Optional
from vjoin.config.models import AppConfig, NormalizationTier
from vjoin.domain.errors import NormalizationError
from vjoin.domain.models import InputVideo, NormalizationAttempt, StepOutcome, TargetProfile
from vjoin.infrastructure.ffmpeg import FFmpegAdapter
from vjoin.pipeline.format_decision import is_fast_path_eligible
from vjoin.pipeline.retry import Strategy, run_strategies

FAST_COPY = "fast-copy"

class Normalizer:
    """Brings one input to the canonical profile: stream copy when eligible, else the tier cascade."""

    def __init__(self, config: AppConfig, ffmpeg: FFmpegAdapter, logger: Optional[logging.Logger] = None):
        self.config = config
        self.ffmpeg = ffmpeg
        self.logger = logger or logging.getLogger(__name__)

    def fast_copy(self, src: Path, dst: Path) -> StepOutcome:
        """Lossless remux. A failure here is never fatal; the caller falls back to the cascade."""
        cmd = self.ffmpeg.build_fast_copy(src, dst)
        outcome = self.ffmpeg.run(cmd, dst, self.config.timeouts.fast_copy, FAST_COPY)
        if not outcome.success:
            self.logger.warning(f"Fast-path failed (not fatal): {outcome.reason}")
        return outcome

    def _tier_strategy(self, src: Path, dst: Path, target: TargetProfile, tier: NormalizationTier) -> Strategy:
        def attempt() -> StepOutcome:
            cmd = self.ffmpeg.build_normalize(src, dst, target, tier)
            return self.ffmpeg.run(cmd, dst, self.config.timeouts.normalize, tier.name)
        return Strategy(name=tier.name, attempt=attempt)

    def normalize_with_retries(self, src: Path, dst: Path, target: TargetProfile,
                               attempts: Optional[List[NormalizationAttempt]] = None) -> StepOutcome:
        """Runs the tier cascade in order; each tier is more conservative than the last."""
        tiers = {t.name: t for t in self.config.normalization.tiers}

        def record(strategy: Strategy, outcome: StepOutcome):
            if attempts is None:
                return
            tier = tiers[strategy.name]
            attempts.append(NormalizationAttempt(
                tier=tier.name, preset=tier.preset, crf=tier.crf,
                extra_filters=list(tier.extra_filters), outcome=outcome,
            ))

        strategies = [self._tier_strategy(src, dst, target, t) for t in self.config.normalization.tiers]
        return run_strategies(strategies, logger=self.logger, on_result=record)

    def prepare(self, video: InputVideo, dst: Path, target: TargetProfile,
                attempts: Optional[List[NormalizationAttempt]] = None) -> str:
        """Produces the canonical video-only file for one input and returns the method used.

        Tier attempts are appended to `attempts` when given. Raises NormalizationError
        once every tier is exhausted.
        """
        prefix = ""
        if video.validation is not None and is_fast_path_eligible(video.validation, target):
            self.logger.info(f"{video.label} already matches {target.name}, using fast-path")
            if self.fast_copy(video.path, dst).success:
                return FAST_COPY
            prefix = "fallback:"
        else:
            v = video.validation
            if v is not None:
                self.logger.info(
                    f"{video.label} needs normalization: codec={v.codec}, "
                    f"dimensions={v.width}x{v.height}, fps={v.frame_rate}"
                )

        outcome = self.normalize_with_retries(video.path, dst, target, attempts)
        if not outcome.success:
            raise NormalizationError(
                f"All {len(self.config.normalization.tiers)} normalization attempts failed for "
                f"{video.label}. Last errors: {outcome.reason}"
            )
        self.logger.info(f"{video.label} normalized via {prefix}{outcome.method}")
        return f"{prefix}{outcome.method}"
