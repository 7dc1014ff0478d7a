#!/usr/bin/env python3
"""
Command-line interface for netorch
Provides commands for running YAML scenario files and validating them.
"""
import sys
import argparse
import json
import yaml
import traceback
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

from . import env
from .deployers import create_deployer
from .errors import BackendUnavailableError, NetorchError
from .models import Backend, RunResult
from .scenario import DSLLoader

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_SKIPPED = 2


class NetorchCLI:
    """Command-line interface for scenario runs"""

    def run_scenario(self, args) -> int:
        """Deploy and run a scenario file"""
        self._print_header(f"Scenario: {args.file}")

        scenario_path = Path(args.file)
        if not scenario_path.exists():
            print(f"Error: scenario file not found: {args.file}")
            print("\nExample: netorch run examples/restart_under_load.yaml")
            return EXIT_FAILED

        try:
            env.apply_startup_defaults()
            dsl_config = DSLLoader.load_from_file(scenario_path)
            builder = DSLLoader.to_builder(dsl_config)
            if args.seed is not None:
                builder.with_seed(args.seed)
            if args.duration is not None:
                builder.with_run_duration(args.duration)
            if args.output_dir:
                builder.with_output_dir(args.output_dir)
            scenario = builder.build()
            backend = self._resolve_backend(args.backend, dsl_config.backend)
        except (NetorchError, OSError) as e:
            print(f"Error: could not prepare scenario: {e}")
            print(f"\nTry validating your scenario file first: netorch validate {args.file}")
            if args.verbose:
                traceback.print_exc()
            return EXIT_FAILED

        print(f"Backend: {backend.value}")
        print(f"Topology: {len(scenario.topology.validators)} validator(s), "
              f"{len(scenario.topology.executors)} executor(s)")
        print(f"Duration: {scenario.run_duration:.0f}s")
        if scenario.seed is not None:
            print(f"Seed: {scenario.seed} (reproducible)")
        print()

        try:
            runner = create_deployer(backend).deploy(scenario)
        except BackendUnavailableError as e:
            print(f"Skipped: {e}")
            return EXIT_SKIPPED
        except NetorchError as e:
            print(f"Error: deployment failed: {e}")
            if args.verbose:
                traceback.print_exc()
            return EXIT_FAILED

        result = runner.run(scenario)
        if args.verbose:
            self._print_detailed_result(result)
        else:
            self._print_summary_result(result)

        if args.output:
            self._save_result(result, args.output, args.format)

        return EXIT_PASSED if result.success else EXIT_FAILED

    def validate_scenario(self, args) -> int:
        """Validate a scenario file without deploying it"""
        self._print_header(f"Validating scenario: {args.file}")

        scenario_path = Path(args.file)
        if not scenario_path.exists():
            print(f"Error: scenario file not found: {args.file}")
            return EXIT_FAILED

        try:
            dsl_config = DSLLoader.load_from_file(scenario_path)
            print("Scenario file loaded successfully")

            scenario = DSLLoader.to_builder(dsl_config).build()
            try:
                print("Scenario validated successfully")

                print("\n" + "=" * 60)
                print("Scenario Summary")
                print("=" * 60)
                print(f"ID: {scenario.scenario_id}")
                print(f"Seed: {scenario.seed}")
                print(f"Topology: {len(scenario.topology.validators)} validator(s), "
                      f"{len(scenario.topology.executors)} executor(s)")
                print(f"Duration: {scenario.run_duration:.0f}s")
                print(f"Node control: {'enabled' if scenario.node_control_enabled else 'disabled'}")
                print(f"Chaos: {'restart' if scenario.chaos_policy else 'none'}")
                print(f"Workloads: {', '.join(w.name for w in scenario.workloads) or 'none'}")
                print(f"Expectations: {', '.join(e.name for e in scenario.expectations) or 'none'}")

                if args.verbose:
                    print("\nNodes:")
                    for descriptor in scenario.topology.nodes:
                        peers = [p.name for p in scenario.topology.initial_peers_of(descriptor)]
                        print(f"  {descriptor.name}: api {descriptor.api_port}, peers {peers}")
            finally:
                scenario.topology.release_ports()

            print("\nScenario file is valid!")
            return EXIT_PASSED

        except (NetorchError, OSError) as e:
            print(f"\nError: Validation failed: {e}")
            print("\nCheck your scenario file syntax. See examples in the examples/ directory.")
            if args.verbose:
                traceback.print_exc()
            return EXIT_FAILED

    @staticmethod
    def _resolve_backend(cli_backend: Optional[str], file_backend: Optional[Backend]) -> Backend:
        if cli_backend:
            return Backend(cli_backend)
        if file_backend is not None:
            return file_backend
        return env.backend()

    def _print_header(self, title: str):
        print()
        print("=" * 80)
        print(title)
        print("=" * 80)
        print()

    def _print_summary_result(self, result: RunResult):
        status = "PASSED" if result.success else "FAILED"
        duration = result.end_time - result.start_time

        print(f"\nScenario: {result.scenario_id}")
        print(f"Status: {status}")
        print(f"Duration: {duration:.2f}s")
        print(f"Chaos Events: {len(result.chaos_events)}")
        for report in result.workload_reports:
            print(f"Workload {report.name}: {report.accepted}/{report.submitted} accepted")

        if result.seed is not None:
            print(f"Seed: {result.seed} (use to reproduce)")

        failed = result.failed_expectations
        if failed:
            print(f"Failed Expectations: {', '.join(r.name for r in failed)}")

        if result.error_message:
            print(f"Error: {result.error_message}")

    def _print_detailed_result(self, result: RunResult):
        """Print detailed result when --verbose flag is specified"""
        self._print_summary_result(result)

        if result.chaos_events:
            print("\nChaos Events:")
            for event in result.chaos_events:
                status = "[PASS]" if event.success else "[FAIL]"
                duration = (event.end_time - event.start_time) if event.end_time else 0
                print(f"  {status} {event.chaos_type.value} on {event.target_node} ({duration:.2f}s)")
                if event.error_message:
                    print(f"    Error: {event.error_message}")

        if result.expectation_results:
            print("\nExpectations:")
            for expectation in result.expectation_results:
                status = "PASS" if expectation.success else "FAIL"
                print(f"  {expectation.name}: {status}")
                if expectation.message:
                    print(f"    → {expectation.message}")

    def _save_result(self, result: RunResult, output_path: str, format: str):
        try:
            output = Path(output_path)
            output.parent.mkdir(parents=True, exist_ok=True)
            data = {
                'timestamp': datetime.now().isoformat(),
                'result': self._result_to_dict(result),
            }
            with open(output, 'w') as f:
                if format == 'json':
                    json.dump(data, f, indent=2)
                else:
                    yaml.safe_dump(data, f, default_flow_style=False)
            print(f"\nResults saved to {output_path}")
        except OSError as e:
            print(f"\nFailed to save results: {e}")

    def _result_to_dict(self, result: RunResult) -> Dict[str, Any]:
        return {
            'scenario_id': result.scenario_id,
            'success': result.success,
            'duration': result.end_time - result.start_time,
            'seed': result.seed,
            'error_message': result.error_message,
            'chaos_events': [
                {
                    'target_node': event.target_node,
                    'success': event.success,
                    'old_pid': None if event.old_pid is None else str(event.old_pid),
                    'new_pid': None if event.new_pid is None else str(event.new_pid),
                    'error': event.error_message,
                }
                for event in result.chaos_events
            ],
            'workloads': [
                {
                    'name': report.name,
                    'submitted': report.submitted,
                    'accepted': report.accepted,
                    'failed': report.failed,
                }
                for report in result.workload_reports
            ],
            'expectations': [
                {'name': r.name, 'success': r.success, 'message': r.message}
                for r in result.expectation_results
            ],
        }


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog='netorch',
        description='netorch - run end-to-end scenarios against multi-node networks',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a scenario on the local backend
  netorch run examples/restart_under_load.yaml

  # Run on docker compose with a fixed seed, saving results
  netorch run examples/restart_under_load.yaml --backend compose --seed 42 --output results.json

  # Validate a scenario file
  netorch validate examples/restart_under_load.yaml
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version='netorch 0.1.0'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    run_parser = subparsers.add_parser(
        'run',
        help='Deploy and run a scenario file'
    )
    run_parser.add_argument(
        'file',
        help='Path to scenario YAML file'
    )
    run_parser.add_argument(
        '--backend',
        choices=[b.value for b in Backend],
        help='Backend to deploy on (default: scenario file, then NETORCH_BACKEND, then local)'
    )
    run_parser.add_argument(
        '--seed',
        type=int,
        help='Seed for the chaos schedule'
    )
    run_parser.add_argument(
        '--duration',
        type=float,
        help='Override the run duration in seconds'
    )
    run_parser.add_argument(
        '--output-dir',
        type=str,
        help='Directory for the JSON run log'
    )
    run_parser.add_argument(
        '--output',
        type=str,
        help='Path to save the run result'
    )
    run_parser.add_argument(
        '--format',
        choices=['json', 'yaml'],
        default='json',
        help='Output format for results (default: json)'
    )
    run_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    validate_parser = subparsers.add_parser(
        'validate',
        help='Validate a scenario file'
    )
    validate_parser.add_argument(
        'file',
        help='Path to scenario YAML file'
    )
    validate_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def main(argv=None):
    """Main entry point for CLI"""

    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s',
        handlers=[logging.StreamHandler()]
    )

    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        print("Error: No command specified\n")
        parser.print_help()
        return EXIT_FAILED

    cli = NetorchCLI()

    try:
        if args.command == 'run':
            return cli.run_scenario(args)
        return cli.validate_scenario(args)
    except KeyboardInterrupt:
        print("\n\nnetorch was interrupted by user")
        return 130
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        if getattr(args, 'verbose', False):
            traceback.print_exc()
        return EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
