"""Tests for the BuildCycle state machine."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from android_devloop.build.gradle import BuildOutcome
from android_devloop.device.models import DeviceState
from android_devloop.errors import UserCancelledError
from android_devloop.install import classifier
from android_devloop.install.classifier import InstallOutcome
from android_devloop.install.recovery import DuplicateRemedy, StorageRemedy
from android_devloop.orchestration.loop import LAUNCH_FAILED_WARNING, BuildCycle, NextAction
from android_devloop.orchestration.session import Stage
from android_devloop.orchestration.tasks import FailureAction
from android_devloop.prompts import NonInteractivePrompter

PACKAGE = "com.example.app"
STORAGE_FAILURE = "Failure [INSTALL_FAILED_INSUFFICIENT_STORAGE]"


def _failed_build(diagnostic: str = "error: cannot find symbol") -> BuildOutcome:
    return BuildOutcome(success=False, duration_s=3.0, diagnostic=diagnostic)


class TestSelectVariant:
    """Tests for variant selection."""

    @pytest.mark.asyncio
    async def test_explicit_variant_skips_prompt(self, make_context, make_builder) -> None:
        """Should build the requested variant without prompting."""
        builder = make_builder()
        context = make_context(builder=builder)

        result = await BuildCycle(context).run(variant="release")

        assert result.success
        assert builder.variants == ["release"]

    @pytest.mark.asyncio
    async def test_invalid_explicit_variant_is_terminal(self, make_context, make_builder) -> None:
        """Should fail before building when the variant is not declared."""
        builder = make_builder()
        context = make_context(builder=builder)

        result = await BuildCycle(context).run(variant="staging", keep_alive=True)

        assert not result.success
        assert result.code == "ERR_INVALID_VARIANT"
        assert result.error == "Invalid build variant: staging. Available variants: debug, release"
        assert builder.variants == []

    @pytest.mark.asyncio
    async def test_valid_default_used_silently(self, make_context, make_builder, config_store) -> None:
        """Should use a valid persisted default without prompting."""
        config_store.config.default_variant = "release"
        builder = make_builder()

        result = await BuildCycle(make_context(builder=builder)).run()

        assert result.success
        assert builder.variants == ["release"]
        assert not config_store.exists()

    @pytest.mark.asyncio
    async def test_invalid_default_prompts_and_persists(
        self, make_context, make_prompter, make_builder, config_store
    ) -> None:
        """Should prompt when the default is not declared and persist the choice."""
        config_store.config.default_variant = "staging"
        prompter = make_prompter(choices=["release"])
        builder = make_builder()

        result = await BuildCycle(make_context(prompter=prompter, builder=builder)).run()

        assert result.success
        assert prompter.prompts == ["Which variant would you like to build?"]
        assert builder.variants == ["release"]
        config_store.load()
        assert config_store.config.default_variant == "release"

    @pytest.mark.asyncio
    async def test_non_interactive_default_not_persisted(
        self, make_context, make_builder, config_store
    ) -> None:
        """Should fall back to the first variant without writing config."""
        config_store.config.default_variant = "staging"
        builder = make_builder()

        result = await BuildCycle(
            make_context(prompter=NonInteractivePrompter(), builder=builder)
        ).run()

        assert result.success
        assert builder.variants == ["debug"]
        assert not config_store.exists()


class TestAcquireDevice:
    """Tests for device acquisition."""

    @pytest.mark.asyncio
    async def test_single_ready_device_no_prompt(self, make_context, make_registry, make_device) -> None:
        """Should deploy to the lone Ready device without prompting."""
        registry = make_registry(
            devices=[make_device("R58M123"), make_device("emulator-5556", state=DeviceState.UNAUTHORIZED)]
        )

        result = await BuildCycle(make_context(registry=registry)).run()

        assert result.success
        assert registry.installs[0][0] == "R58M123"
        assert registry.launches == [("R58M123", PACKAGE)]

    @pytest.mark.asyncio
    async def test_acquisition_failure_terminal_in_keep_alive(
        self, make_context, make_registry, make_prompter, make_builder
    ) -> None:
        """Should end the session without a retry menu when no device is available."""
        registry = make_registry(emulator_available=False)
        prompter = make_prompter()
        builder = make_builder()

        result = await BuildCycle(
            make_context(registry=registry, prompter=prompter, builder=builder)
        ).run(keep_alive=True)

        assert not result.success
        assert result.code == "ERR_NO_DEVICE"
        assert result.error == "Emulator command not found. Please connect a physical device."
        assert prompter.prompts == []
        assert builder.variants == []

    @pytest.mark.asyncio
    async def test_several_devices_prompt_once_per_session(
        self, make_context, make_registry, make_prompter, make_device, config_store
    ) -> None:
        """Should prompt for the device once and reuse it on rebuild."""
        registry = make_registry(devices=[make_device("R58M123"), make_device("emulator-5554")])
        prompter = make_prompter(
            choices=[
                "emulator-5554",
                NextAction.REBUILD,
                NextAction.RETURN_TO_MENU,
            ]
        )

        result = await BuildCycle(make_context(registry=registry, prompter=prompter)).run(keep_alive=True)

        assert result.success
        assert prompter.prompts.count("Select target device:") == 1
        assert [serial for serial, _ in registry.installs] == ["emulator-5554", "emulator-5554"]
        assert config_store.config.selected_device == "emulator-5554"

    @pytest.mark.asyncio
    async def test_boot_timeout_then_no_device(
        self, make_context, make_registry, make_prompter, make_builder
    ) -> None:
        """Should carry the boot warning and fail cleanly when no device appears."""
        registry = make_registry(images=["Pixel_6_API_34"])
        builder = make_builder()

        result = await BuildCycle(
            make_context(registry=registry, prompter=make_prompter(confirms=[True]), builder=builder)
        ).run()

        assert not result.success
        assert result.code == "ERR_DEVICE_UNAVAILABLE"
        assert result.warnings == ["Emulator started but may still be booting"]
        assert builder.variants == []


class TestBuildFailure:
    """Tests for build failure handling."""

    @pytest.mark.asyncio
    async def test_non_keep_alive_returns_without_prompt(
        self, make_context, make_prompter, make_builder
    ) -> None:
        """Should report the diagnostic and never prompt."""
        prompter = make_prompter()
        builder = make_builder([_failed_build()])

        result = await BuildCycle(make_context(prompter=prompter, builder=builder)).run()

        assert not result.success
        assert result.code == "ERR_BUILD_FAILED"
        assert result.error == "error: cannot find symbol"
        assert prompter.prompts == []

    @pytest.mark.asyncio
    async def test_retry_keeps_variant_and_device(
        self, make_context, make_registry, make_prompter, make_builder, make_device
    ) -> None:
        """Should re-enter Build with the same variant and device on Retry."""
        registry = make_registry(devices=[make_device("R58M123"), make_device("emulator-5554")])
        prompter = make_prompter(
            choices=[
                "R58M123",
                FailureAction.RETRY,
                NextAction.RETURN_TO_MENU,
            ]
        )
        builder = make_builder([_failed_build()])
        cycle = BuildCycle(make_context(registry=registry, prompter=prompter, builder=builder))

        result = await cycle.run(variant="release", keep_alive=True)

        assert result.success
        assert builder.variants == ["release", "release"]
        assert registry.installs == [("R58M123", "/work/app/build/outputs/apk/debug/app-debug.apk")]
        assert prompter.prompts.count("Select target device:") == 1

    @pytest.mark.asyncio
    async def test_return_to_menu_reports_failure(self, make_context, make_prompter, make_builder) -> None:
        """Should end the session with the build failure on Return to Menu."""
        prompter = make_prompter(choices=[FailureAction.RETURN_TO_MENU])
        builder = make_builder([_failed_build("BUILD FAILED in 3s")])

        result = await BuildCycle(make_context(prompter=prompter, builder=builder)).run(keep_alive=True)

        assert not result.success
        assert result.error == "BUILD FAILED in 3s"
        assert builder.variants == ["debug"]

    @pytest.mark.asyncio
    async def test_missing_artifact_is_build_failure(self, make_context, make_builder) -> None:
        """Should treat a build without an artifact as failed."""
        builder = make_builder(
            [BuildOutcome(success=False, duration_s=1.0, diagnostic="Build succeeded but APK path not found.")]
        )

        result = await BuildCycle(make_context(builder=builder)).run()

        assert not result.success
        assert result.error == "Build succeeded but APK path not found."


class TestInstall:
    """Tests for install and recovery inside the cycle."""

    @pytest.mark.asyncio
    async def test_recovered_install_launches(self, make_context, make_registry, make_prompter, make_device) -> None:
        """Should launch after a recovered duplicate install."""
        registry = make_registry(
            devices=[make_device("emulator-5554")],
            install_results=[InstallOutcome(success=False, diagnostic="INSTALL_FAILED_ALREADY_EXISTS")],
        )
        prompter = make_prompter(choices=[DuplicateRemedy.CLEAR_DATA])

        result = await BuildCycle(make_context(registry=registry, prompter=prompter)).run()

        assert result.success
        assert registry.launches == [("emulator-5554", PACKAGE)]

    @pytest.mark.asyncio
    async def test_unrecoverable_install_carries_suggestion(
        self, make_context, make_registry, make_device, make_prompter
    ) -> None:
        """Should surface the diagnostic and classified suggestion."""
        registry = make_registry(
            devices=[make_device("emulator-5554")],
            install_results=[InstallOutcome(success=False, diagnostic="Failure [INSTALL_FAILED_INVALID_APK]")],
        )

        result = await BuildCycle(make_context(registry=registry, prompter=make_prompter())).run()

        assert not result.success
        assert result.code == "ERR_INSTALL_FAILED"
        assert result.error == "Failure [INSTALL_FAILED_INVALID_APK]"
        assert result.suggestion == classifier.classify("INSTALL_FAILED_INVALID_APK").suggestion
        assert registry.launches == []

    @pytest.mark.asyncio
    async def test_install_failure_retry_rebuilds(
        self, make_context, make_registry, make_device, make_prompter, make_builder
    ) -> None:
        """Should re-enter Build, not just Install, on Retry after an install failure."""
        registry = make_registry(
            devices=[make_device("emulator-5554")],
            install_results=[InstallOutcome(success=False, diagnostic="Permission denied")],
        )
        prompter = make_prompter(choices=[FailureAction.RETRY, NextAction.RETURN_TO_MENU])
        builder = make_builder()

        result = await BuildCycle(
            make_context(registry=registry, prompter=prompter, builder=builder)
        ).run(keep_alive=True)

        assert result.success
        assert builder.variants == ["debug", "debug"]
        assert len(registry.installs) == 2


class TestLaunch:
    """Tests for the soft launch failure."""

    @pytest.mark.asyncio
    async def test_launch_failure_is_warning(self, make_context, make_registry, make_device) -> None:
        """Should stay successful and record a warning when launch fails."""
        registry = make_registry(devices=[make_device("emulator-5554")], launch_ok=False)

        result = await BuildCycle(make_context(registry=registry)).run()

        assert result.success
        assert result.error is None
        assert result.warnings == [LAUNCH_FAILED_WARNING]


class TestPostOutcome:
    """Tests for the keep-alive menu after a successful cycle."""

    @pytest.mark.asyncio
    async def test_open_logs_returns_to_menu(
        self, make_context, make_registry, make_device, make_prompter, log_viewer
    ) -> None:
        """Should open logs then show the same menu again."""
        registry = make_registry(devices=[make_device("emulator-5554")])
        prompter = make_prompter(choices=[NextAction.OPEN_LOGS, NextAction.RETURN_TO_MENU])

        result = await BuildCycle(
            make_context(registry=registry, prompter=prompter, log_viewer=log_viewer)
        ).run(keep_alive=True)

        assert result.success
        assert log_viewer.opened == [("emulator-5554", PACKAGE)]
        assert prompter.prompts == ["What would you like to do next?"] * 2

    @pytest.mark.asyncio
    async def test_switch_device_then_rebuild(
        self, make_context, make_registry, make_device, make_prompter, config_store
    ) -> None:
        """Should deploy the rebuild to the switched device."""
        registry = make_registry(devices=[make_device("R58M123"), make_device("emulator-5554")])
        prompter = make_prompter(
            choices=[
                "R58M123",
                NextAction.SWITCH_DEVICE,
                "emulator-5554",
                NextAction.REBUILD,
                NextAction.RETURN_TO_MENU,
            ]
        )

        result = await BuildCycle(make_context(registry=registry, prompter=prompter)).run(keep_alive=True)

        assert result.success
        assert [serial for serial, _ in registry.installs] == ["R58M123", "emulator-5554"]
        assert config_store.config.selected_device == "emulator-5554"

    @pytest.mark.asyncio
    async def test_no_menu_without_keep_alive(self, make_context, make_prompter) -> None:
        """Should exit right after launch when keep_alive is off."""
        prompter = make_prompter()

        result = await BuildCycle(make_context(prompter=prompter)).run()

        assert result.success
        assert prompter.prompts == []


class TestCancellation:
    """Tests for user cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_in_menu_is_graceful(self, make_context, make_prompter) -> None:
        """Should report a cancelled, non-error result."""
        prompter = make_prompter(choices=[UserCancelledError("menu")])

        result = await BuildCycle(make_context(prompter=prompter)).run(keep_alive=True)

        assert result.success
        assert result.cancelled
        assert result.error is None

    @pytest.mark.asyncio
    async def test_cancel_during_recovery(self, make_context, make_registry, make_device, make_prompter) -> None:
        """Should unwind from a recovery prompt without an error."""
        registry = make_registry(
            devices=[make_device("emulator-5554")],
            install_results=[InstallOutcome(success=False, diagnostic=STORAGE_FAILURE)],
        )
        prompter = make_prompter(choices=[UserCancelledError("storage")])

        result = await BuildCycle(make_context(registry=registry, prompter=prompter)).run()

        assert result.cancelled
        assert result.error is None
        assert registry.launches == []


class TestEndToEnd:
    """End-to-end scenarios over fakes."""

    @pytest.mark.asyncio
    async def test_boot_single_image_then_build(
        self, make_context, make_registry, make_prompter, make_builder, make_device, sleep_recorder
    ) -> None:
        """Should boot the only AVD, find it Ready within the bound and build."""
        registry = make_registry(
            images=["Pixel_6_API_34"],
            booted_devices=[make_device("emulator-5554")],
            ready_after_polls=2,
        )
        prompter = make_prompter(confirms=[True])
        builder = make_builder()

        result = await BuildCycle(
            make_context(registry=registry, prompter=prompter, builder=builder)
        ).run()

        assert result.success
        assert result.warnings == []
        assert registry.booted == ["Pixel_6_API_34"]
        assert prompter.prompts == ["No devices connected. Start an emulator?"]
        assert len(sleep_recorder.calls) == 2
        assert builder.variants == ["debug"]
        assert registry.launches == [("emulator-5554", PACKAGE)]

    @pytest.mark.asyncio
    async def test_storage_uninstall_retry_succeeds(
        self, make_context, make_registry, make_prompter, make_device
    ) -> None:
        """Should uninstall, reinstall once and launch."""
        registry = make_registry(
            devices=[make_device("emulator-5554")],
            install_results=[InstallOutcome(success=False, diagnostic=STORAGE_FAILURE)],
        )
        prompter = make_prompter(choices=[StorageRemedy.UNINSTALL])

        result = await BuildCycle(make_context(registry=registry, prompter=prompter)).run()

        assert result.success
        assert registry.uninstalls == [("emulator-5554", PACKAGE)]
        assert len(registry.installs) == 2
        assert registry.launches == [("emulator-5554", PACKAGE)]

    @pytest.mark.asyncio
    async def test_storage_retry_fails_again(
        self, make_context, make_registry, make_prompter, make_device
    ) -> None:
        """Should fail with the retry diagnostic and classify exactly once."""
        registry = make_registry(
            devices=[make_device("emulator-5554")],
            install_results=[
                InstallOutcome(success=False, diagnostic=STORAGE_FAILURE),
                InstallOutcome(success=False, diagnostic=STORAGE_FAILURE),
            ],
        )
        prompter = make_prompter(choices=[StorageRemedy.UNINSTALL])

        with patch.object(classifier, "classify", wraps=classifier.classify) as spy:
            result = await BuildCycle(make_context(registry=registry, prompter=prompter)).run()

        assert not result.success
        assert result.error == f"Installation failed again: {STORAGE_FAILURE}"
        assert spy.call_count == 1
        assert len(registry.installs) == 2
        assert registry.launches == []


class TestTransitions:
    """Tests for the transition table itself."""

    def test_every_stage_reaches_done(self) -> None:
        """Should let every non-terminal stage reach DONE."""
        from android_devloop.orchestration.session import TRANSITIONS

        graph: dict[Stage, set[Stage]] = {}
        for (source, _), target in TRANSITIONS.items():
            graph.setdefault(source, set()).add(target)

        for stage in Stage:
            if stage is Stage.DONE:
                continue
            seen = {stage}
            frontier = [stage]
            while frontier:
                for target in graph.get(frontier.pop(), ()):
                    if target not in seen:
                        seen.add(target)
                        frontier.append(target)
            assert Stage.DONE in seen, stage

    def test_invalid_transition(self) -> None:
        """Should reject events a stage does not accept."""
        from android_devloop.orchestration.session import Event, InvalidTransitionError, next_stage

        with pytest.raises(InvalidTransitionError):
            next_stage(Stage.BUILD, Event.REBUILD)

    def test_session_requires_prerequisites(self) -> None:
        """Should reject stages entered without the state earlier stages set."""
        from android_devloop.orchestration.session import InvalidTransitionError, OrchestrationSession

        session = OrchestrationSession(keep_alive=False)

        with pytest.raises(InvalidTransitionError, match="build reached before a variant"):
            session.require_variant(Stage.BUILD)
        with pytest.raises(InvalidTransitionError, match="launch reached before a device"):
            session.require_device(Stage.LAUNCH)

        session.variant = "debug"
        session.device_serial = "emulator-5554"
        assert session.require_variant(Stage.BUILD) == "debug"
        assert session.require_device(Stage.INSTALL) == "emulator-5554"

    @pytest.mark.asyncio
    async def test_install_without_artifact(self, make_context) -> None:
        """Should raise instead of installing when no artifact was built."""
        from android_devloop.orchestration.session import InvalidTransitionError, OrchestrationSession

        session = OrchestrationSession(keep_alive=False, variant="debug", device_serial="emulator-5554")

        with pytest.raises(InvalidTransitionError, match="install reached without a built artifact"):
            await BuildCycle(make_context())._install(session)
