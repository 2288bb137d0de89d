# hostagent

Building blocks for an agent that runs on a host being discovered for a
cluster installation. A step receives its request as JSON, does its work on
the host and returns an `ExecResult` (stdout, stderr, exit code) whose
stdout is the JSON answer. Each step can be used on its own from Python.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Command

`hostagent-ntp-synchronizer` takes one argument, an NTP synchronisation
request as JSON. It adds any sources that chrony does not use yet, then
prints the configured sources and their states as JSON:

```
hostagent-ntp-synchronizer '{"ntp_source": "pool.example.com"}'
```

Several sources can be given, separated by commas. With `--dry-run` chrony
is left alone and `{"ntp_sources": []}` is printed. The step's stderr is
written to standard error and the process exits with the step's exit code.

## Modules

- `hostagent.execute`: run commands and collect their output as an
  `ExecResult`. `execute`, `execute_shell` (through `bash -c`),
  `execute_privileged` (runs the command in the host's namespaces through
  `nsenter`), `execute_output_to_file`, `execute_privileged_to_file`,
  `log_privileged_command_output` and `dry_reboot_happened`.
  `execute_privileged_to_file` raises `CommandFailedError` when the command
  fails or writes to stderr; `log_privileged_command_output` collects such
  failures in a list instead.
- `hostagent.network`: `is_ipv4_addr`, `Route`, `RouteFinder`,
  `is_usable_ipv6_route` and `set_v6_prefixes_for_address`, which returns
  the addresses with each IPv6 address given the prefix length of the
  router-advertised route that contains it, instead of `/128`.
- `hostagent.network_interface`: `NetworkInterface` with
  `interface_type`, `is_physical`, `is_bonding`, `is_vlan` and
  `speed_mbps`, reading from the host through an object that provides the
  `InterfaceDependencies` methods (`eval_symlinks`, `link_type`,
  `read_file`).
- `hostagent.nmap`: `parse_nmaprun` reads nmap XML output into
  `NmapRun`, `Host`, `Status` and `Address`, raising `ValueError` for
  anything that is not an nmap report.
- `hostagent.ntp_synchronizer`: chrony source handling:
  `get_ntp_sources`, `format_chrony_sources_output`,
  `convert_source_state` (to a `SourceState`), `is_server_configured`,
  `add_server`, `handle_new_ntp_sources`, the step entry `run`,
  `dry_run_ntp` and `main`. Chrony failures raise `NtpError`. Commands and
  DNS lookups go through a `ProcessExecuter`, which can be replaced by any
  object with the same methods.
- `hostagent.upgrade_agent`: `run` pulls a new agent image with
  `podman pull` in the host's namespaces and reports an `UpgradeResult`.
  A failed pull is still a successful step whose answer says `failure`;
  while a pull is in progress, another request returns at once without a
  result. `RealDependencies` does the real pull.
- `hostagent.machine_uuid`: `read_id` derives a stable host identifier
  from the motherboard serial, the system UUID or, failing both, the
  lowest MAC address among the network interfaces (`InterfaceInfo`), and
  falls back to `FAILURE_UUID`. Known placeholder serials and UUIDs are
  skipped. Hardware values come from a `SerialDiscovery` object
  (`product_uuid`, `baseboard_serial`); `md5_generate_uuid`,
  `read_system_uuid`, `read_motherboard_serial` and
  `uuid_from_network_interfaces` are the pieces it is built from.
- `hostagent.tang_connectivity`: `check_tang_connectivity` checks that
  every Tang server in a request answers its advertisement URL;
  `unmarshal_tang_servers`, `tang_request`, `TangServer` and `TangError`
  are the pieces it is built from.
- `hostagent.wiremock`: `WireMockClient` for a WireMock server used in
  end-to-end tests: add and delete stubs (`StubDefinition`,
  `RequestDefinition`, `ResponseDefinition`), list and reset received
  requests (`RequestOccurrence`), and find requests by exact URL or URL
  prefix. Response status codes are not checked. `register_url`,
  `next_steps_url` and `host_ids` build the paths and host identifiers the
  agent uses.

## Example

```python
from hostagent import ntp_synchronizer

sources = ntp_synchronizer.format_chrony_sources_output(
    "^* 192.0.2.10   2  10   377   261  +5240ns[+7909ns] +/-  492us\n"
)
print(sources[0].source_name, sources[0].source_state.value)
```

## What it does not do

The package provides individual steps, not a running agent: nothing here
registers a host with an installation service, polls it for instructions
or sends replies back. Only the NTP step has a command; the other steps
are called from Python. It collects no hardware or network inventory of
its own beyond what the modules above describe, and sets up no logging
besides the standard `logging` loggers of each module.