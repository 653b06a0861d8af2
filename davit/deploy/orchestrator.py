"""One deployment run: resolve, pick an image, patch, review, roll out"""
import sys
import threading
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from davit.core.colors import Colors
from davit.core.config import DavitConfig, Environment
from davit.core.errors import (ConfigError, ClusterError, DavitError, ExitCode,
                               RegistryError, ResolutionError, RevertError)
from davit.core.kubectl import KubeCommand
from davit.core.logger import Logger
from davit.deploy.blueprint import patch, render_diff
from davit.deploy.dashboard import RolloutReporter
from davit.deploy.discovery import discover_all
from davit.deploy.git import GitFinalizer
from davit.deploy.logmux import LogMultiplexer, LogSource
from davit.deploy.models import DeploymentIntent, ImageCandidate, Service, Target
from davit.deploy.prompts import Prompter
from davit.deploy.registry import RegistryClient
from davit.deploy.resolver import (ENVIRONMENT, NeedsChoice, NeedsConfirmation,
                                   NotFound, Unique, resolve)
from davit.deploy.revert import RevertGuard, RevertManager
from davit.deploy.rollout import RolloutController, RolloutPhase
from davit.deploy.signals import interrupt_sets
from davit.deploy.watch import WatchSource, kubectl_log_source, kubectl_pod_watch
from davit.utils.formatters import format_since
from davit.utils.parsers import image_base
from davit.utils.validators import validate_image_tag

MAX_IMAGE_CHOICES = 20


@dataclass(frozen=True)
class DeployOptions:
    env: Optional[str] = None
    service: Optional[str] = None
    tag: Optional[str] = None
    dry_run: bool = False
    timeout: Optional[float] = None
    yes: bool = False
    full_diff: bool = False
    show_logs: bool = True


class Deployer:
    """Runs the deploy flow and maps every outcome to an exit code"""

    def __init__(self, config: DavitConfig,
                 prompter: Optional[Prompter] = None,
                 registry: Optional[RegistryClient] = None,
                 finalizer: Optional[GitFinalizer] = None,
                 revert_manager: Optional[RevertManager] = None,
                 kube_factory: Callable[..., KubeCommand] = KubeCommand,
                 discover: Callable[..., List[Service]] = discover_all,
                 watch_factory: Callable[..., WatchSource] = kubectl_pod_watch,
                 log_factory: Callable[..., LogSource] = kubectl_log_source,
                 cancel: Optional[threading.Event] = None):
        self.config = config
        self.prompter = prompter or Prompter()
        self.registry = registry or RegistryClient()
        self.finalizer = finalizer or GitFinalizer()
        self.revert_manager = revert_manager or RevertManager()
        self.kube_factory = kube_factory
        self.discover = discover
        self.watch_factory = watch_factory
        self.log_factory = log_factory
        self.cancel = cancel or threading.Event()
        self.stage = "resolve"
        self.controller: Optional[RolloutController] = None

    @property
    def interactive(self) -> bool:
        return self.config.defaults.interactive

    @property
    def last_phase(self) -> str:
        if self.controller is not None:
            return self.controller.state.phase.name
        return self.stage

    def run(self, options: DeployOptions) -> ExitCode:
        try:
            intent = self.build_intent(options)
            return self.execute(intent, options)
        except RevertError as e:
            self.report_revert_error(e)
            return ExitCode.FATAL
        except KeyboardInterrupt:
            print(file=sys.stderr)
            Logger.warn(f"Interrupted by user (last phase: {self.last_phase})")
            return ExitCode.ABORTED
        except DavitError as e:
            Logger.error(str(e))
            Logger.error(f"Last phase: {self.last_phase}")
            return e.exit_code

    # ==================== resolution ====================

    def build_intent(self, options: DeployOptions) -> DeploymentIntent:
        target = self.resolve_target(options)
        self.stage = "registry"
        image = self.choose_image(target.service, options.tag)
        return DeploymentIntent(target.environment, target.service, image, options.dry_run)

    def resolve_target(self, options: DeployOptions) -> Target:
        services = self.discover(self.config.environments, self.config.defaults.registry)
        env_fragment = options.env
        service_fragment = options.service

        while True:
            outcome = resolve(self.config.environments, env_fragment, services, service_fragment)
            match outcome:
                case Unique(target=target):
                    return target

                case NeedsConfirmation(candidate=candidate, scope=scope, fragment=fragment):
                    label = self.label(candidate)
                    if not self.interactive:
                        raise ResolutionError(
                            f"{scope} '{fragment}' is not an exact name; did you mean '{label}'?")
                    if not self.prompter.confirm(f"Use {scope} '{label}'?"):
                        raise ResolutionError(f"No {scope} confirmed")
                    picked = candidate

                case NeedsChoice(candidates=candidates, scope=scope, fragment=fragment):
                    labels = [self.label(c) for c in candidates]
                    if not self.interactive:
                        raise ResolutionError(
                            f"{scope} '{fragment}' is ambiguous: {', '.join(labels)}")
                    index = self.prompter.choose(f"Select {scope}", labels)
                    if index is None:
                        raise ResolutionError(f"No {scope} selected")
                    picked = candidates[index]

                case NotFound(scope=scope, fragment=fragment):
                    raise ResolutionError(f"No {scope} matches '{fragment}'")

            if scope == ENVIRONMENT:
                env_fragment = picked.name
                continue

            # Services are picked by identity: names may repeat across namespaces
            environment = self.config.get_environment(picked.environment)
            return Target(environment, picked)

    @staticmethod
    def label(candidate) -> str:
        if isinstance(candidate, Service):
            return (f"{candidate.name} ({candidate.namespace}, "
                    f"{candidate.path.name}, container {candidate.container})")
        if isinstance(candidate, Environment):
            return f"{candidate.name} (protected)" if candidate.protected else candidate.name
        return str(candidate)

    def list_images(self, service: Service) -> List[ImageCandidate]:
        while True:
            Logger.info(f"Fetching images for {image_base(service.image)}...")
            try:
                return self.registry.list_images(service.image)
            except RegistryError as e:
                Logger.error(str(e))
                if not self.interactive:
                    raise
                if not self.prompter.confirm("Retry registry listing?"):
                    raise ResolutionError("Aborted after registry error") from e

    def choose_image(self, service: Service, tag: Optional[str]) -> ImageCandidate:
        if tag:
            valid, reason = validate_image_tag(tag)
            if not valid:
                raise ResolutionError(reason)

        candidates = self.list_images(service)
        if not candidates:
            raise RegistryError(f"No tagged images found for {image_base(service.image)}")

        if tag:
            candidate = self.registry.find_tag(candidates, tag)
            if candidate is None:
                raise ResolutionError(f"Tag '{tag}' not found for {image_base(service.image)}")
            return candidate

        if not self.interactive:
            raise ResolutionError("--tag is required when not running interactively")

        shown = candidates[:MAX_IMAGE_CHOICES]
        current = service.image
        options = []
        for c in shown:
            marker = f" {Colors.GREEN}(current){Colors.RESET}" if c.reference == current else ""
            options.append(f"{c.tag:<24} {c.digest}  {format_since(c.updated)}{marker}")

        index = self.prompter.choose(f"Select image for {service.name}", options)
        if index is None:
            raise ResolutionError("No image selected")
        return shown[index]

    # ==================== execution ====================

    def execute(self, intent: DeploymentIntent, options: DeployOptions) -> ExitCode:
        service = intent.service
        environment = intent.environment

        self.stage = "patch"
        try:
            token = self.revert_manager.snapshot(service.path)
        except OSError as e:
            raise ConfigError(f"Cannot read {service.path}: {e}") from e

        result = patch(token.original, service.container, intent.image.reference,
                       kind=service.kind, workload=service.workload or None)
        if not result.changed:
            Logger.success(f"{service.name} in {environment.name} already uses {intent.image.reference}")
            return ExitCode.SUCCESS

        self.stage = "review"
        unified = self.config.defaults.unified_diff and not options.full_diff
        for line in render_diff(result, str(service.path), unified=unified):
            print(line)
        print()

        if intent.dry_run:
            Logger.info("Dry run - no changes written or applied")
            return ExitCode.SUCCESS

        if not self.confirm(environment, options):
            Logger.warn("Deployment cancelled")
            return ExitCode.ABORTED

        with RevertGuard(self.revert_manager, token) as guard:
            self.revert_manager.write(token, result.patched)
            state = self.roll_out(intent, token, options)
            if state.phase is RolloutPhase.SUCCEEDED:
                guard.keep()

        return self.verdict(intent, state)

    def confirm(self, environment: Environment, options: DeployOptions) -> bool:
        if environment.protected:
            Logger.warn(f"'{environment.name}' is a protected environment")
            return self.prompter.typed_confirmation(environment.name)
        if options.yes:
            return True
        return self.prompter.confirm(f"Deploy to {environment.name}?")

    def roll_out(self, intent: DeploymentIntent, token, options: DeployOptions):
        service = intent.service
        policy = self.config.rollout
        if options.timeout:
            policy = replace(policy, timeout_seconds=options.timeout)

        kube = self.kube_factory(
            namespace=service.namespace,
            context=intent.environment.cluster_context,
            verbose=Logger.verbose,
        )
        log_mux = LogMultiplexer(
            self.log_factory(kube, service.container, service.namespace, policy.log_tail_lines),
            capacity=policy.log_buffer_lines,
            cancel=self.cancel,
        )
        reporter = RolloutReporter(intent, show_logs=options.show_logs)

        def finalize():
            self.finalizer.commit_and_push(
                intent.environment.yaml_root_dir, intent.commit_message, service.path)

        self.controller = RolloutController(
            apply=lambda: kube.apply(service.path, service.namespace),
            watch_source=self.watch_factory(kube, service.selector, service.container, service.namespace),
            target_image=intent.image.reference,
            policy=policy,
            revert_manager=self.revert_manager,
            token=token,
            finalize=finalize,
            log_mux=log_mux,
            expected_replicas=service.replicas,
            cancel=self.cancel,
            listener=reporter,
        )

        reporter.header()
        with interrupt_sets(self.cancel):
            state = self.controller.run()
        reporter.summary(state)
        return state

    def verdict(self, intent: DeploymentIntent, state) -> ExitCode:
        service = intent.service
        match state.phase:
            case RolloutPhase.SUCCEEDED:
                if state.audit_error is not None:
                    Logger.warn(f"Rollout succeeded but recording it failed: {state.audit_error}")
                    Logger.warn(f"{service.path} is modified but not committed; commit it by hand")
                Logger.success(
                    f"Deployed {intent.image.reference} to {service.name} in {intent.environment.name}")
                return ExitCode.SUCCESS

            case RolloutPhase.FAILED:
                Logger.error(f"Rollout failed: {state.error}")
                Logger.info(f"Original manifest restored: {service.path}")
                self.hint_cluster_undo(service)
                return ExitCode.FAILED

            case RolloutPhase.ABORTED:
                Logger.warn("Rollout aborted by user; original manifest restored")
                self.hint_cluster_undo(service)
                return ExitCode.ABORTED

        raise ClusterError(f"Rollout ended in non-terminal phase {state.phase.name}")

    @staticmethod
    def hint_cluster_undo(service: Service):
        Logger.info(
            f"The cluster may still run the new image; to roll it back: "
            f"kubectl rollout undo {service.kind.lower()}/{service.workload or service.name} -n {service.namespace}")

    def report_revert_error(self, error: RevertError):
        Logger.fatal(f"REVERT FAILED: {error.path}: {error.cause}")
        Logger.error(f"Last phase: {self.last_phase}")
        Logger.error("The local manifest no longer matches the last good commit.")
        Logger.error(f"Manual recovery: restore {error.path} to exactly this content:")
        print(f"{Colors.DIM}----- {error.path} -----{Colors.RESET}", file=sys.stderr)
        print(error.original.decode("utf-8", errors="replace"), file=sys.stderr, end="")
        print(f"{Colors.DIM}----- end -----{Colors.RESET}", file=sys.stderr)
