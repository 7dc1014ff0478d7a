#!/usr/bin/env python3
"""
Example script: restart chaos under transaction and DA load.

Node counts, run length and backend come from NETORCH_VALIDATORS,
NETORCH_EXECUTORS, NETORCH_RUN_SECS and NETORCH_BACKEND.
"""
import sys
import logging

from netorch import ScenarioBuilder, create_deployer, env
from netorch.errors import BackendUnavailableError

logger = logging.getLogger(__name__)

TXS_PER_BLOCK = 5
TOTAL_WALLETS = 1000
TRANSACTION_WALLETS = 500

# Restarts land outside the default run window to avoid crash loops on restart
CHAOS_MIN_DELAY = 120
CHAOS_MAX_DELAY = 180
CHAOS_COOLDOWN = 240

DA_CHANNEL_RATE = 1
DA_BLOB_RATE = 1


def build_scenario(validators: int, executors: int, run_secs: float):
    return (
        ScenarioBuilder()
        .topology_with(lambda t: t.network_star().with_node_counts(validators, executors))
        .enable_node_control()
        .chaos_with(lambda c: c.restart()
                    .min_delay(CHAOS_MIN_DELAY)
                    .max_delay(CHAOS_MAX_DELAY)
                    .target_cooldown(CHAOS_COOLDOWN)
                    .apply())
        .wallets(TOTAL_WALLETS)
        .transactions_with(TXS_PER_BLOCK, TRANSACTION_WALLETS)
        .da_with(DA_CHANNEL_RATE, DA_BLOB_RATE)
        .with_run_duration(run_secs)
        .expect_consensus_liveness()
        .build()
    )


def main() -> int:
    env.apply_startup_defaults()
    validators, executors, run_secs = env.validator_count(), env.executor_count(), env.run_secs()
    backend = env.backend()
    logger.info(f"Starting {backend.value} demo: {validators} validator(s), {executors} executor(s), {run_secs}s")

    scenario = build_scenario(validators, executors, run_secs)
    try:
        runner = create_deployer(backend).deploy(scenario)
    except BackendUnavailableError as e:
        logger.warning(f"{e}; skipping demo")
        return 0

    if backend.value == "compose" and not runner.context.telemetry_configured():
        logger.warning("compose deployment is not exposing prometheus metrics")

    result = runner.run(scenario)
    print(f"Scenario {result.scenario_id}: {'PASSED' if result.success else 'FAILED'}")
    print(f"Chaos events: {len(result.chaos_events)}")
    for report in result.workload_reports:
        print(f"{report.name}: {report.accepted}/{report.submitted} accepted")
    for expectation in result.expectation_results:
        print(f"{expectation.name}: {'PASS' if expectation.success else 'FAIL'} {expectation.message}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
