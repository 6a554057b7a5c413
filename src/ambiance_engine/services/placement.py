"""Timeline placement: decides where grains land without touching the host."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np
from loguru import logger

from ..app.models import (
    ChannelMode,
    EffectiveConfig,
    EuclideanTiming,
    IntervalMode,
    NoiseAlgorithm,
    SourceItem,
    SubArea,
    TimeRange,
)
from ..app.settings import Settings
from .distribution import runs_independent_tracks, select_target_tracks
from .euclidean import BEATS_PER_BAR, BucketPatternCombiner, ConstantTempoMap, PatternCombiner, TempoMap
from .extraction import resolve_extraction
from .noise import NoiseOracle, ValueNoiseOracle, placement_probability, validate_noise_settings
from .randomization import (
    PitchDraw,
    directional_variation,
    draw_pitch,
    grain_properties,
    stretched_length,
)
from .types import (
    Crossfade,
    GenerationContext,
    GenerationWarning,
    PlacedGrain,
    PlacementPlan,
    TrackStructure,
    TrackType,
    WarningKind,
)

# Offsets decorrelating the secondary noise draws from the density noise.
DECISION_TIME_OFFSET = 0.789
DECISION_FREQUENCY_SCALE = 1.13
ACCEPT_SEED_OFFSET = 54321
JITTER_SEED_OFFSET = 11111
ITEM_SELECTION = (0.123, 1.37, 98765)
AREA_SELECTION = (0.456, 1.59, 24680)


@dataclass(frozen=True)
class ItemView:
    """The region of a source item a grain plays."""

    index: int
    item: SourceItem
    start_offset: float
    length: float
    sub_area: Optional[SubArea] = None

    @classmethod
    def of(cls, index: int, item: SourceItem, area_index: Optional[int] = None) -> "ItemView":
        if area_index is None or not item.sub_areas:
            return cls(index, item, item.start_offset, item.length)
        area = item.sub_areas[area_index]
        return cls(index, item, area.start, area.length, area)


@dataclass(frozen=True)
class IntervalState:
    last_item_end: float
    theoretical_position: float
    interval: float
    is_first: bool = True
    iterations: int = 0
    skipped: int = 0
    min_required_length: float = 0.0

    @classmethod
    def initial(cls, start: float, interval: float) -> "IntervalState":
        return cls(last_item_end=start, theoretical_position=start, interval=interval)


@dataclass(frozen=True)
class GrainSlot:
    position: float
    length: float
    view: ItemView
    pitch: PitchDraw


@dataclass(frozen=True)
class StepOutcome:
    state: IntervalState
    slot: Optional[GrainSlot] = None
    done: bool = False


@dataclass
class _LoopEnv:
    config: EffectiveConfig
    structure: TrackStructure
    context: GenerationContext
    start: float
    end: float
    fixed_targets: Optional[Tuple[int, ...]] = None
    windowed: bool = False
    last_primary: Optional[int] = None

    @property
    def rng(self) -> np.random.Generator:
        return self.context.rng

    @property
    def length(self) -> float:
        return self.end - self.start

    def window(self, start: float, end: float) -> "_LoopEnv":
        return replace(self, start=start, end=end, windowed=True)


class PlacementEngine:
    """Computes a :class:`PlacementPlan` for one container and time range."""

    def __init__(
        self,
        settings: Settings,
        noise_oracle: Optional[NoiseOracle] = None,
        pattern_combiner: Optional[PatternCombiner] = None,
        tempo_map: Optional[TempoMap] = None,
    ) -> None:
        self._settings = settings
        self._noise = noise_oracle or ValueNoiseOracle()
        self._combiner = pattern_combiner or BucketPatternCombiner()
        self._tempo_map = tempo_map

    def plan(
        self,
        config: EffectiveConfig,
        structure: TrackStructure,
        time_range: TimeRange,
        context: GenerationContext,
    ) -> PlacementPlan:
        plan = PlacementPlan()
        if structure.warning:
            plan.warnings.append(GenerationWarning(WarningKind.TOPOLOGY_FALLBACK, structure.warning))
        if not config.items or time_range.length <= 0:
            return plan

        env = _LoopEnv(config, structure, context, time_range.start, time_range.end)
        mode = config.params.interval_mode
        if mode is IntervalMode.NOISE:
            self._plan_noise(env, plan)
        elif mode is IntervalMode.EUCLIDEAN:
            self._plan_euclidean(env, plan)
        else:
            runner = self._plan_chunks if mode is IntervalMode.CHUNK else self._run_interval_loop
            if runs_independent_tracks(config, structure):
                for track_index in range(structure.num_tracks):
                    runner(replace(env, fixed_targets=(track_index,)), plan)
            else:
                runner(env, plan)

        self._summarize(env, plan)
        logger.debug(
            "Placed {} grain(s) for {} in {} mode after {} step(s)",
            len(plan.grains),
            config.name,
            mode.value,
            plan.iterations,
        )
        return plan

    # Interval modes -----------------------------------------------------

    def base_interval(self, env: _LoopEnv) -> float:
        params = env.config.params
        if params.interval_mode is IntervalMode.RELATIVE:
            return env.length * params.trigger_rate / 100.0
        if params.interval_mode is IntervalMode.COVERAGE:
            # Recomputed from each grain's length as it is placed.
            return 0.0
        return params.trigger_rate

    def _coverage_interval(self, env: _LoopEnv, item_length: float) -> float:
        coverage = env.config.params.trigger_rate
        if coverage <= 0:
            return env.length
        return item_length * (100.0 / coverage)

    def step(self, state: IntervalState, env: _LoopEnv) -> StepOutcome:
        """Advance the interval state machine by one candidate grain."""

        if state.last_item_end >= env.end:
            return StepOutcome(state, done=True)

        params = env.config.params
        coverage = params.interval_mode is IntervalMode.COVERAGE and not env.windowed
        state = replace(state, iterations=state.iterations + 1)
        view = self._random_view(env)
        interval = state.interval

        if interval < 0 and view.length < abs(interval):
            return StepOutcome(
                replace(
                    state,
                    skipped=state.skipped + 1,
                    min_required_length=max(state.min_required_length, abs(interval)),
                    last_item_end=state.last_item_end + self._settings.skip_nudge_seconds,
                )
            )

        if coverage:
            interval = self._coverage_interval(env, view.length)

        def drift(magnitude: float) -> float:
            return directional_variation(magnitude, params.trigger_drift, params.drift_direction, env.rng)

        if coverage and state.is_first:
            position = env.start + drift(interval)
        elif coverage:
            ideal = state.theoretical_position + drift(interval)
            position = max(ideal, state.last_item_end)
        elif state.is_first and interval > 0:
            span = min(interval, env.length) if env.windowed else interval
            position = env.start + float(env.rng.random()) * span
        elif interval < 0:
            position = state.last_item_end + interval + drift(abs(interval))
        else:
            position = state.last_item_end + interval + drift(interval)
        position = max(position, env.start)
        if env.windowed:
            position = min(position, env.end)

        if position >= env.end:
            return StepOutcome(state, done=True)

        pitch = draw_pitch(params, view.item, env.rng)
        length = min(stretched_length(view.length, pitch), env.end - position)
        if length <= 0:
            if env.windowed:
                return StepOutcome(state, done=True)
            nudged = position + self._settings.zero_length_nudge_seconds
            return StepOutcome(replace(state, last_item_end=nudged, is_first=False))

        theoretical = state.theoretical_position
        if coverage:
            interval = self._coverage_interval(env, length)
            theoretical += interval

        next_state = replace(
            state,
            last_item_end=position + length,
            theoretical_position=theoretical,
            interval=interval,
            is_first=False,
        )
        return StepOutcome(next_state, slot=GrainSlot(position, length, view, pitch))

    def _run_interval_loop(self, env: _LoopEnv, plan: PlacementPlan) -> None:
        cap = self._settings.max_placement_iterations
        self._drive(env, plan, IntervalState.initial(env.start, self.base_interval(env)), cap)

    def _drive(self, env: _LoopEnv, plan: PlacementPlan, state: IntervalState, cap: int) -> None:
        while True:
            if state.iterations >= cap:
                if state.last_item_end < env.end:
                    self._note_cap(env, plan, cap)
                break
            outcome = self.step(state, env)
            state = outcome.state
            if outcome.slot is not None:
                self._place(env, plan, outcome.slot, crossfade=True)
            if outcome.done:
                break
        plan.iterations += state.iterations
        plan.skipped_items += state.skipped
        plan.min_required_length = max(plan.min_required_length, state.min_required_length)

    def _plan_chunks(self, env: _LoopEnv, plan: PlacementPlan) -> None:
        chunk = env.config.params.chunk
        cursor = env.start
        windows = 0
        while cursor < env.end:
            if windows >= self._settings.max_chunk_windows:
                self._note_cap(env, plan, self._settings.max_chunk_windows)
                break
            windows += 1
            active = chunk.duration * (
                1.0 + directional_variation(1.0, chunk.duration_variation, chunk.duration_direction, env.rng)
            )
            active = max(self._settings.min_chunk_seconds, active)
            silence = chunk.silence * (
                1.0 + directional_variation(1.0, chunk.silence_variation, chunk.silence_direction, env.rng)
            )
            silence = max(0.0, silence)
            window = env.window(cursor, min(cursor + active, env.end))
            self._drive(
                window,
                plan,
                IntervalState.initial(window.start, env.config.params.trigger_rate),
                self._settings.max_chunk_items,
            )
            env.last_primary = window.last_primary
            cursor += active + silence

    # Noise mode ---------------------------------------------------------

    def _plan_noise(self, env: _LoopEnv, plan: PlacementPlan) -> None:
        settings = env.config.params.noise
        validate_noise_settings(settings)
        seed = settings.seed if settings.seed is not None else int(env.rng.integers(1, 2**31 - 1))
        frequency = settings.frequency
        threshold = settings.threshold / 100.0

        def probability(time: float) -> float:
            value = self._noise.value_at_time(
                time,
                env.start,
                env.end,
                frequency,
                settings.octaves,
                settings.persistence,
                settings.lacunarity,
                seed,
            )
            return placement_probability(value, settings.density, settings.amplitude)

        def decision(time: float, seed_offset: int) -> float:
            return self._noise.value_at_time(
                time + DECISION_TIME_OFFSET,
                env.start,
                env.end,
                frequency * DECISION_FREQUENCY_SCALE,
                1,
                0.5,
                2.0,
                seed + seed_offset,
            )

        def place_at(time: float) -> None:
            view = self._noise_view(env, time, frequency, seed)
            pitch = draw_pitch(env.config.params, view.item, env.rng)
            length = min(stretched_length(view.length, pitch), env.end - time)
            if length > 0:
                self._place(env, plan, GrainSlot(time, length, view, pitch), crossfade=False)

        if settings.algorithm is NoiseAlgorithm.ACCUMULATION:
            dt = 1.0 / max(0.01, frequency * 10.0)
            count = int(math.ceil(env.length / dt))
            if count > self._settings.max_noise_samples:
                self._note_cap(env, plan, self._settings.max_noise_samples)
                count = self._settings.max_noise_samples
            accumulator = 0.0
            for time in env.start + np.arange(count) * dt:
                time = float(time)
                if time >= env.end:
                    break
                p = probability(time)
                if p >= threshold:
                    accumulator += p * frequency * dt
                    if accumulator >= 1.0:
                        place_at(time)
                        accumulator -= 1.0
                else:
                    accumulator *= 0.9
            plan.iterations += count
            return

        step = 1.0 / max(0.01, frequency)
        time = env.start
        samples = 0
        while time < env.end:
            if samples >= self._settings.max_noise_samples:
                self._note_cap(env, plan, self._settings.max_noise_samples)
                break
            samples += 1
            p = probability(time)
            if p >= threshold and decision(time, ACCEPT_SEED_OFFSET) <= p:
                jittered = time + (decision(time, JITTER_SEED_OFFSET) - 0.5) * 0.5 * step
                if env.start <= jittered < env.end:
                    place_at(jittered)
            time += step
        plan.iterations += samples

    def _noise_index(
        self,
        env: _LoopEnv,
        time: float,
        frequency: float,
        seed: int,
        selector: Tuple[float, float, int],
        count: int,
    ) -> int:
        time_offset, frequency_scale, seed_offset = selector
        value = self._noise.value_at_time(
            time + time_offset,
            env.start,
            env.end,
            frequency * frequency_scale,
            1,
            0.5,
            2.0,
            seed + seed_offset,
        )
        return min(int(value * count), count - 1)

    def _noise_view(self, env: _LoopEnv, time: float, frequency: float, seed: int) -> ItemView:
        items = env.config.items
        index = self._noise_index(env, time, frequency, seed, ITEM_SELECTION, len(items))
        item = items[index]
        area_index = None
        if item.sub_areas:
            area_index = self._noise_index(env, time, frequency, seed, AREA_SELECTION, len(item.sub_areas))
        return ItemView.of(index, item, area_index)

    # Euclidean mode -----------------------------------------------------

    def _plan_euclidean(self, env: _LoopEnv, plan: PlacementPlan) -> None:
        settings = env.config.params.euclidean
        pattern, steps = self._combiner.combine(settings.layers)
        items = env.config.items
        if steps <= 0:
            return

        if settings.timing is EuclideanTiming.FIT:
            step_seconds = env.length / steps
            repetitions = 1

            def step_time(repetition: int, index: int) -> float:
                return env.start + index * step_seconds

        else:
            tempo_map: TempoMap = ConstantTempoMap(settings.tempo_bpm)
            if settings.use_tempo_map and self._tempo_map is not None:
                tempo_map = self._tempo_map
            origin = tempo_map.time_to_beats(env.start)
            beats_per_step = BEATS_PER_BAR / steps
            repetitions = self._settings.max_pattern_repetitions

            def step_time(repetition: int, index: int) -> float:
                beats = origin + repetition * BEATS_PER_BAR + index * beats_per_step
                return tempo_map.beats_to_time(beats)

        cursor = 0
        for repetition in range(repetitions):
            for index in range(steps):
                time = step_time(repetition, index)
                if time >= env.end:
                    plan.iterations += repetition + 1
                    return
                if not pattern[index]:
                    continue
                item_index = cursor % len(items)
                cursor += 1
                view = self._random_area(env, item_index)
                pitch = draw_pitch(env.config.params, view.item, env.rng)
                length = min(stretched_length(view.length, pitch), env.end - time)
                if length > 0:
                    self._place(env, plan, GrainSlot(time, length, view, pitch), crossfade=False)
        plan.iterations += repetitions
        if settings.timing is EuclideanTiming.TEMPO:
            self._note_cap(env, plan, repetitions)

    # Shared helpers -----------------------------------------------------

    def _random_area(self, env: _LoopEnv, item_index: int) -> ItemView:
        item = env.config.items[item_index]
        area_index = None
        if item.sub_areas:
            area_index = int(env.rng.integers(len(item.sub_areas)))
        return ItemView.of(item_index, item, area_index)

    def _random_view(self, env: _LoopEnv) -> ItemView:
        return self._random_area(env, int(env.rng.integers(len(env.config.items))))

    def _allow_pan(self, env: _LoopEnv) -> bool:
        structure = env.structure
        if env.config.channel_mode is ChannelMode.STEREO:
            return True
        return structure.track_type is TrackType.STEREO and structure.track_channels == 2

    def _targets(self, env: _LoopEnv, item_index: int) -> Tuple[int, ...]:
        if env.fixed_targets is not None:
            return env.fixed_targets
        return select_target_tracks(env.config, env.structure, item_index, env.context)

    def _place(self, env: _LoopEnv, plan: PlacementPlan, slot: GrainSlot, *, crossfade: bool) -> None:
        view = slot.view
        properties = grain_properties(
            env.config.params,
            view.item,
            slot.pitch,
            slot.length,
            env.rng,
            allow_pan=self._allow_pan(env),
        )
        targets = self._targets(env, view.index)
        primary = len(plan.grains)
        for track_index in targets:
            plan.grains.append(
                PlacedGrain(
                    track_index=track_index,
                    position=slot.position,
                    length=slot.length,
                    source=view.item,
                    start_offset=view.start_offset,
                    extraction=resolve_extraction(
                        view.item.num_channels,
                        track_index,
                        env.structure,
                        env.config,
                        env.rng,
                    ),
                    properties=properties,
                    sub_area=view.sub_area,
                )
            )

        previous = env.last_primary
        if crossfade and previous is not None:
            before = plan.grains[previous]
            if before.track_index == targets[0] and slot.position < before.end:
                plan.crossfades.append(Crossfade(previous, primary, self._settings.crossfade_shape))
        env.last_primary = primary

    def _note_cap(self, env: _LoopEnv, plan: PlacementPlan, cap: int) -> None:
        plan.hit_iteration_cap = True
        message = f"{env.config.name}: stopped after reaching the iteration limit ({cap})"
        logger.warning(message)
        plan.warnings.append(GenerationWarning(WarningKind.ITERATION_CAP, message))

    def _summarize(self, env: _LoopEnv, plan: PlacementPlan) -> None:
        if not plan.skipped_items:
            return
        interval = abs(env.config.params.trigger_rate)
        message = (
            f"{env.config.name}: skipped {plan.skipped_items} item(s) shorter than the "
            f"{interval:.2f}s negative interval; items need at least "
            f"{plan.min_required_length:.2f}s"
        )
        logger.warning(message)
        plan.warnings.append(GenerationWarning(WarningKind.SKIPPED_ITEMS, message))
