import datetime
from dataclasses import dataclass

from rich.pretty import pprint

from declargs import *


@dataclass
class Globals:
    verbose: bool = flag(short="v", help="print the parse trace")
    config: str = flag(short="c", default="app.toml", help="configuration file")


@dataclass
class Deploy:
    http: Port = flag(range="1-65535", default="8080", help="listen port")
    timeout: datetime.timedelta = flag(default="30s", help="rollout timeout")
    tags: list[str] = flag(short="t", split=True, help="labels to attach")
    replicas: UInt8 | UnsetType = flag(help="replica count (cluster default when absent)")
    service: str = positional(0, help="service to deploy")
    hosts: list[str] = positional("1*", help="target hosts")


app = Command("app", globals=Globals, descr="Deployment tool.", shell=True, colorful=True)


@app.command(aliases=("d",), examples=("app deploy web -t blue,canary host1 host2",))
def deploy(options: Deploy, result: ParseResult):
    """Deploy a service to a set of hosts."""
    if result.globals.verbose:
        enable_logging()
    pprint(options)


if __name__ == '__main__':
    app.run()
