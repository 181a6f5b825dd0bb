"""
Command line interface for libvirt-ch-harness.

Operator helpers around the harness:
- show the network plan of a test id
- print the domain descriptor a test would submit
- wipe persisted daemon state
- check the daemon answers ``virsh uri``
- probe a guest for readiness
- generate a configuration file
"""

import os
import platform
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from typing_extensions import Annotated

from .config import Config
from .exceptions import BootTimeoutError, HarnessError, ProcessSpawnError
from .logging import configure_logging
from .models import DiskSet, TestIdentity, VcpuTopology
from .network import plan_network
from .orchestrator import ProcessOrchestrator
from .provisioning import BootImageResolver
from .readiness import ImageClass, ReadinessProber
from .remote import RemoteCommandExecutor
from .xml_templates import DomainXMLGenerator

app = typer.Typer(
    name="ch-harness",
    help="🧪 libvirt cloud-hypervisor integration test harness",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config", "-c",
        help="Configuration file (YAML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    )
]


def _load_config(config_file: Optional[Path]) -> Config:
    return Config.load(str(config_file) if config_file else None)


def version_callback(value: bool):
    """Print the version and exit."""
    if value:
        from . import __version__
        console.print(f"[bold green]libvirt-ch-harness[/bold green] version [bold blue]{__version__}[/bold blue]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version", "-V",
            callback=version_callback,
            help="Show the version and exit"
        )
    ] = None,
):
    """
    🧪 libvirt cloud-hypervisor integration test harness
    """
    pass


@app.command()
def plan(
    numeric_id: Annotated[int, typer.Argument(help="Test id", min=0, max=255)],
    config: ConfigOption = None,
):
    """
    🌐 Show the network plan of a test id
    """
    app_config = _load_config(config)
    network = plan_network(app_config.network.subnet_class, numeric_id, app_config.network.base_port)

    table = Table(title=f"🌐 Network plan for test {numeric_id}", show_header=True, header_style="bold blue")
    table.add_column("Item", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("Guest IP", network.guest_ip)
    table.add_row("Host IP", network.host_ip)
    table.add_row("Secondary guest IPs", ", ".join(network.l2_guest_ips))
    table.add_row("Guest MAC", network.guest_mac)
    table.add_row("Secondary guest MACs", ", ".join(network.l2_guest_macs))
    table.add_row("TCP listener port", str(network.tcp_listener_port))

    console.print(table)


@app.command()
def descriptor(
    os_disk: Annotated[str, typer.Option("--os-disk", help="OS disk path")],
    seed_disk: Annotated[str, typer.Option("--seed-disk", help="cloud-init seed disk path")],
    numeric_id: Annotated[int, typer.Option("--id", help="Test id", min=1, max=255)] = 1,
    vcpus: Annotated[int, typer.Option("--vcpus", help="vCPUs at boot", min=1)] = 1,
    max_vcpus: Annotated[Optional[int], typer.Option("--max-vcpus", help="Maximum vCPUs")] = None,
    memory: Annotated[int, typer.Option("--memory", help="Memory in bytes", min=0)] = 1 << 30,
    cmdline: Annotated[
        Optional[str],
        typer.Option("--cmdline", help="Boot the kernel directly with this command line")
    ] = None,
    firmware: Annotated[str, typer.Option("--firmware", help="Firmware (rust, ovmf)")] = "rust",
    uuid: Annotated[str, typer.Option("--uuid", help="Domain UUID")] = "00000000-0000-0000-0000-000000000000",
    config: ConfigOption = None,
):
    """
    📝 Print the domain descriptor a test would submit
    """
    app_config = _load_config(config)

    try:
        resolver = BootImageResolver(app_config.workloads)
        boot_mode = resolver.direct_boot(cmdline) if cmdline else resolver.firmware_boot(firmware)
        result = DomainXMLGenerator().build(
            TestIdentity(numeric_id=numeric_id, name=f"vm-{numeric_id}", uuid=uuid),
            VcpuTopology(boot_count=vcpus, max_count=max_vcpus or vcpus),
            memory,
            DiskSet(os_disk_path=os_disk, seed_disk_path=seed_disk),
            plan_network(app_config.network.subnet_class, numeric_id, app_config.network.base_port),
            boot_mode,
        )
    except (HarnessError, ValueError) as e:
        console.print(f"[red]❌ Cannot build descriptor: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(Syntax(result.xml, "xml"))


@app.command()
def cleanup(config: ConfigOption = None):
    """
    🧹 Remove persisted daemon state directories and pid files
    """
    app_config = _load_config(config)
    configure_logging(app_config)

    ProcessOrchestrator(app_config).cleanup_state()
    for path in [*app_config.daemon.state_dirs, *app_config.daemon.pid_files]:
        console.print(f"  🗑️  {path}")
    console.print("[bold green]✅ Daemon state cleaned[/bold green]")


@app.command()
def uri(config: ConfigOption = None):
    """
    🔍 Ask the running daemon for its connection URI
    """
    app_config = _load_config(config)
    configure_logging(app_config)

    try:
        result = ProcessOrchestrator(app_config).uri()
    except ProcessSpawnError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)

    if not result.success:
        console.print(f"[red]❌ virsh uri exited with {result.returncode}[/red]\n{result.output}")
        raise typer.Exit(code=result.returncode)

    reported = result.stdout.strip()
    console.print(f"🔗 {reported}")
    if reported != app_config.daemon.uri:
        console.print(f"[yellow]⚠️  Expected {app_config.daemon.uri}[/yellow]")
        raise typer.Exit(code=1)


@app.command()
def probe(
    address: Annotated[str, typer.Argument(help="Guest address")],
    retries: Annotated[Optional[int], typer.Option("--retries", "-r", help="Probe attempts", min=1)] = None,
    heavy: Annotated[bool, typer.Option("--heavy", help="Use the heavy image retry budget")] = False,
    config: ConfigOption = None,
):
    """
    ⏳ Wait until a guest answers the readiness command
    """
    app_config = _load_config(config)
    configure_logging(app_config)

    prober = ReadinessProber.for_image_class(
        RemoteCommandExecutor.from_config(app_config.guest),
        app_config.guest,
        image_class=ImageClass.HEAVY if heavy else ImageClass.STANDARD,
        retries=retries,
    )

    try:
        with console.status(f"Probing {address}..."):
            result = prober.wait(address)
    except BootTimeoutError as e:
        console.print(f"[red]❌ {address} not reachable after {e.attempts} attempts[/red]")
        raise typer.Exit(code=1)

    console.print(f"[bold green]✅ {address} ready after {result.attempts} attempt(s)[/bold green]")


@app.command()
def generate_config(
    output: Annotated[
        Path,
        typer.Option(
            "--output", "-o",
            help="Output file"
        )
    ] = Path("ch-harness.yaml"),
):
    """
    📝 Write a configuration file with every option at its default
    """
    try:
        Config().to_yaml_file(str(output))
    except OSError as e:
        console.print(f"[red]❌ Failed to write configuration: {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"✅ Configuration written to [bold blue]{output}[/bold blue]")


@app.command()
def info(config: ConfigOption = None):
    """
    ℹ️  Show harness and host information
    """
    from . import __version__

    app_config = _load_config(config)

    table = Table(title="ℹ️  Harness information", show_header=True, header_style="bold cyan")
    table.add_column("Item", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("Version", __version__)
    table.add_row("Architecture", platform.machine())
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    table.add_row("User", os.getenv("USER", "unknown"))
    table.add_row("Connection URI", app_config.daemon.uri)
    table.add_row("Daemon", app_config.daemon.daemon_binary)
    table.add_row("Client", app_config.daemon.client_binary)
    table.add_row("Workloads", app_config.workloads.workloads_dir)
    table.add_row("Provisioner", app_config.workloads.provisioner)
    table.add_row("Subnet class", app_config.network.subnet_class)

    console.print(table)


def main_cli():
    """Entry point."""
    app()


if __name__ == '__main__':
    main_cli()
