"""Show the configuration or where it lives"""
import sys

from davit.core.colors import Colors
from davit.core.config import get_config_path, load_config
from davit.core.decorators import Command, arg
from davit.core.errors import ConfigError
from davit.core.kubectl import KubeCommand
from davit.core.logger import Logger
from davit.utils.formatters import format_table


@Command.register("config", help="Configuration management", args=[
    arg("action", choices=["show", "path"],
        help="show: print the loaded configuration; path: print its location"),
])
class ConfigCommand:
    """Handle config subcommand"""

    def execute(self, args):
        match args.action:
            case "path":
                print(get_config_path())
            case "show":
                self.show()

    def show(self):
        try:
            config = load_config()
        except ConfigError as e:
            Logger.error(str(e))
            sys.exit(e.exit_code)

        print(f"{Colors.BOLD}Config:{Colors.RESET} {config.path}")
        print(f"{Colors.BOLD}Current kubectl context:{Colors.RESET} {KubeCommand.get_current_context()}")
        print(f"{Colors.BOLD}Interactive:{Colors.RESET} {config.defaults.interactive}")
        print(f"{Colors.BOLD}Registry:{Colors.RESET} {config.defaults.registry or '(any)'}")
        print()

        rows = [
            [env.name, env.cluster_context, env.namespace,
             "yes" if env.protected else "no", str(env.yaml_root_dir)]
            for env in config.environments
        ]
        print(format_table(rows, ["NAME", "CONTEXT", "NAMESPACE", "PROTECTED", "YAML ROOT"]))

        policy = config.rollout
        print(f"{Colors.BOLD}Rollout:{Colors.RESET} timeout {policy.timeout_seconds:g}s, "
              f"ready {sorted(policy.ready_phases)}, failed {sorted(policy.failed_phases)}")
        print(f"  crash reasons: {', '.join(sorted(policy.crash_reasons))}")
