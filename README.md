# stratumkit

Mock mining devices for driving Stratum mining infrastructure during
development and testing, block header hashing helpers, and the
configuration loader for a Stratum V1 to V2 translator proxy.

The package has no third-party runtime dependencies.

## What is inside

- **`stratumkit.header`**: `double_sha256`, `merkle_root_from_path` (builds the
  coinbase as prefix + extranonce + suffix, hashes it and folds in each
  32-byte branch node) and the `BlockHeader` dataclass with `serialize`
  (80-byte consensus encoding), `block_hash` (raw byte order) and
  `hash_as_int` (the hash read as a little-endian number).
- **`stratumkit.sv1_job`**: `Notify.from_params` parses the nine `params` of a
  `mining.notify` message; `Job.from_notify` turns it, together with the full
  extranonce, into a job with a numeric job id and a computed merkle root.
- **`stratumkit.sv1_miner`**: `Miner` holds a candidate header and a target;
  `new_header` starts a job at nonce 0, `next_share` returns `True` when the
  header hash is below the target.
- **`stratumkit.sv1_protocol`**: `Session` keeps the state of one V1 client
  connection (`ClientStatus.INIT`, `CONFIGURED`, `SUBSCRIBED`). It builds
  `mining.configure`, `mining.subscribe`, `mining.authorize` and
  `mining.submit` requests, and `handle_message` / `parse_line` process the
  server's responses and `mining.notify`, `mining.set_difficulty`,
  `mining.set_extranonce` and `mining.set_version_mask` notifications.
  A configure response is answered with a subscribe request. Malformed or
  out-of-order messages raise `ProtocolError`. `target_from_difficulty`
  converts a pool difficulty into a 256-bit target, returning `None` when it
  does not fit.
- **`stratumkit.sv1_client`**: `Client` combines a session, a miner and an
  outgoing queue; `connect` runs the whole V1 mock miner over TCP, and `main`
  is the command-line entry point.
- **`stratumkit.sv2_miner`**: a CPU `Miner` for standard channels whose
  `new_target` takes a 32-byte little-endian target and whose `next_share`
  returns a `NextShareOutcome` (`VALID_SHARE` when the hash is at or below the
  target, `INVALID_SHARE`, `NO_TARGET`, `NO_HEADER`). `measure_hashrate`
  estimates hashes per second multiplied by the available CPUs, and
  `mine(miner, share_queue, kill)` hashes nonces, putting valid shares
  `(nonce, job_id, version, time)` on a `queue.Queue` until the
  `threading.Event` is set; a non-zero `handicap` waits that many
  microseconds between hashes.
- **`stratumkit.sv2_device`**: message types (`SetupConnection`,
  `OpenStandardMiningChannel`, `NewMiningJob`, `SetNewPrevHash`,
  `SubmitSharesStandard`), `setup_connection_message`, `open_channel` (which
  measures the hashrate for five seconds and applies an optional multiplier),
  and `Device`, which tracks the channel, future jobs and the chain tip, keeps
  the miner's work current, reports through `take_work_notification` when
  the mining threads should restart, and builds numbered shares with
  `build_share`.
- **`stratumkit.translator_config`** and **`stratumkit.translator_args`**:
  `TranslatorConfig` with `DownstreamDifficultyConfig` and
  `UpstreamDifficultyConfig`, built from parts with `from_parts` or from a
  parsed TOML table with `from_mapping`, and `process_cli_args` to load it
  from the command line.

## Installing

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Running the V1 mock miner

```
stratumkit-sv1-miner
```

By default this starts a client with id `80` that connects to an upstream at
`127.0.0.1:34255`, retrying every second until the upstream accepts the
connection. `--address host:port` and `--id N` change both. The client sends
`mining.configure`, waits until it is subscribed, sends `mining.authorize`
for the user `user`, then hashes headers built from `mining.notify` jobs and
submits the shares it finds, pausing 0.2 seconds after each one. Until the
upstream sends `mining.set_difficulty` the miner uses a built-in default
target. Stop it with Ctrl-C.

From Python the same client runs with
`asyncio.run(stratumkit.sv1_client.connect(client_id, upstream_addr, single_submit, custom_target))`;
`upstream_addr` is `"host:port"` or a `(host, port)` tuple, `single_submit`
stops submitting after the first share has been written, and `custom_target`
replaces the default with 32 big-endian bytes.

## Translator configuration file

`process_cli_args(argv)` reads `-c/--config` (default `proxy-config.toml`)
and an optional `-f/--log-file`. A configuration looks like this:

```toml
upstream_address = "127.0.0.1"
upstream_port = 34254
upstream_authority_pubkey = "placeholder"
downstream_address = "0.0.0.0"
downstream_port = 34255
max_supported_version = 2
min_supported_version = 2
min_extranonce2_size = 8

[downstream_difficulty_config]
min_individual_miner_hashrate = 10000000.0
shares_per_minute = 6.0

[upstream_difficulty_config]
channel_diff_update_interval = 60
channel_nominal_hashrate = 10000000.0
```

`submits_since_last_update` and `timestamp_of_last_update` default to `0`, and
`should_aggregate` defaults to `false`. The authority public key is kept as
the string given. An unreadable file, invalid TOML, or a missing or
out-of-range field raises `ConfigError`. A log file given on the command line
replaces any `log_file` in the configuration and is returned by
`TranslatorConfig.log_dir()`.

Two `DownstreamDifficultyConfig` values compare equal when their
`min_individual_miner_hashrate` values round to the same whole number.

## What it does not do

- The V2 device side is message handling and mining only: there is no
  network connection, no encrypted handshake and no binary frame encoding, so
  there is no command that runs a V2 mock device against a pool.
- The translator proxy itself is not included; the package only loads and
  validates its configuration.
- The V1 client does not use version rolling when submitting shares and
  always submits as `user` with an all-zero extranonce2.