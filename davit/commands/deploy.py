"""Deploy a service image to an environment"""
import sys

from davit.core.config import load_config
from davit.core.decorators import Command, arg
from davit.core.errors import ConfigError
from davit.core.logger import Logger
from davit.deploy.orchestrator import Deployer, DeployOptions


@Command.register("deploy", aliases=["d"], help="Deploy a service to an environment", args=[
    arg("-e", "--env", help="Target environment (e.g., staging, production)"),
    arg("-s", "--service", help="Service name to deploy"),
    arg("-t", "--tag", help="Image tag to deploy"),
    arg("--dry-run", action="store_true",
        help="Show the diff only; write and apply nothing"),
    arg("--timeout", type=float,
        help="Rollout timeout in seconds (default: from config, 300)"),
    arg("-y", "--yes", action="store_true",
        help="Skip the yes/no confirmation (protected environments still ask)"),
    arg("--full-diff", action="store_true", help="Show the whole file in the diff"),
    arg("--no-logs", action="store_true", help="Do not stream pod logs"),
])
class DeployCommand:
    """Handle deploy subcommand"""

    def execute(self, args):
        try:
            config = load_config()
        except ConfigError as e:
            Logger.error(str(e))
            sys.exit(e.exit_code)

        if args.timeout is not None and args.timeout <= 0:
            Logger.error("--timeout must be positive")
            sys.exit(2)

        options = DeployOptions(
            env=args.env,
            service=args.service,
            tag=args.tag,
            dry_run=args.dry_run,
            timeout=args.timeout,
            yes=args.yes,
            full_diff=args.full_diff,
            show_logs=not args.no_logs,
        )

        code = Deployer(config).run(options)
        sys.exit(int(code))
