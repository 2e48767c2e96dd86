import os
import sys
import time

import yaml
from dotenv import load_dotenv

from keypad_cracker.attack.timing_attacker import AttackConfig, TimingAttacker
from keypad_cracker.core.exceptions import (
    ConfigurationError,
    KeypadCrackerException,
    MalformedResponse,
    RecoveryFailed,
    TimingOracleUnavailable,
)
from keypad_cracker.core.interfaces import OracleResult
from keypad_cracker.services.analysis_service import AnalysisService
from keypad_cracker.services.scope_service import ScpiScope
from keypad_cracker.services.simulation import (
    KeypadLock, SimulatedBench, SimulatedScope, SimulatedSerialTarget
)
from keypad_cracker.services.target_service import SerialTarget
from keypad_cracker.services.timing_service import InstrumentTimingOracle, SamplingPolicy
from keypad_cracker.utils.logger import Logger


MODES = ("hardware", "simulated")


def describe(result: OracleResult) -> str:
    if result.accepted:
        return f"'{result.candidate}' accepted ({result.measurement:.3f})"
    return f"'{result.candidate}' rejected ({result.measurement:.3f})"


def load_config(config_path: str = "config/config.yaml") -> dict:
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML config: {str(e)}")

    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file is empty or not a mapping: {config_path}")
    for section in ("attack", "scope", "target", "simulation", "logging"):
        if section not in config:
            raise ConfigurationError(f"Missing config section '{section}'")
    return config


def apply_env_overrides(config: dict, environ=None) -> dict:
    """Overlay the supported environment variables onto the loaded config."""
    environ = os.environ if environ is None else environ

    if environ.get('CRACKER_MODE'):
        config['mode'] = environ['CRACKER_MODE']
    if environ.get('ALPHABET'):
        config['attack']['alphabet'] = environ['ALPHABET']
    if environ.get('SERIAL_PORT'):
        config['target']['port'] = environ['SERIAL_PORT']
    if environ.get('SCOPE_HOST'):
        config['scope']['host'] = environ['SCOPE_HOST']
    if environ.get('SIMULATED_SECRET'):
        config['simulation']['secret'] = environ['SIMULATED_SECRET']
    if environ.get('LOG_LEVEL'):
        config['logging']['level'] = environ['LOG_LEVEL']
    if environ.get('SECRET_LENGTH'):
        try:
            config['attack']['secret_length'] = int(environ['SECRET_LENGTH'])
        except ValueError:
            raise ConfigurationError(f"SECRET_LENGTH must be an integer: {environ['SECRET_LENGTH']}")

    mode = config.setdefault('mode', 'simulated')
    if mode not in MODES:
        raise ConfigurationError(f"Unknown mode '{mode}', expected one of {MODES}")
    return config


def build_oracle(config: dict, logger: Logger) -> InstrumentTimingOracle:
    scope_cfg = config['scope']

    if config['mode'] == 'hardware':
        instrument = ScpiScope(
            host=scope_cfg['host'],
            port=scope_cfg.get('port', 5555),
            timeout=scope_cfg.get('timeout', 2.0),
            logger=logger.child("scope")
        )
        target_cfg = config['target']
        try:
            target = SerialTarget(
                port=target_cfg['port'],
                baudrate=target_cfg.get('baudrate', 115200),
                timeout=target_cfg.get('timeout', 2.0),
                logger=logger.child("target")
            )
        except TimingOracleUnavailable:
            instrument.close()
            raise
    else:
        sim_cfg = config['simulation']
        lock = KeypadLock(
            secret=str(sim_cfg['secret']),
            cycles_per_match=sim_cfg.get('cycles_per_match', 12),
            base_cycles=sim_cfg.get('base_cycles', 6),
            noise=sim_cfg.get('noise', 0),
            seed=sim_cfg.get('seed')
        )
        bench = SimulatedBench(lock)
        instrument = SimulatedScope(bench)
        target = SimulatedSerialTarget(bench)
        logger.info("Using simulated keypad lock")

    try:
        oracle = InstrumentTimingOracle(
            instrument=instrument,
            target=target,
            threshold=scope_cfg.get('threshold', 128),
            scale=scope_cfg.get('scale', 1.0),
            arm_timeout=scope_cfg.get('arm_timeout', 2.0),
            capture_timeout=scope_cfg.get('capture_timeout', 2.0),
            poll_interval=scope_cfg.get('poll_interval', 0.01),
            logger=logger
        )
    except ValueError as e:
        instrument.close()
        target.close()
        raise ConfigurationError(str(e))

    try:
        oracle.configure(scope_cfg.get('setup', []))
    except KeypadCrackerException:
        oracle.close()
        raise
    return oracle


def build_attacker(config: dict, oracle: InstrumentTimingOracle, logger: Logger) -> TimingAttacker:
    attack_cfg = config['attack']
    sampling_cfg = attack_cfg.get('sampling', {})

    try:
        sampling_policy = SamplingPolicy(
            samples=sampling_cfg.get('samples', 1),
            aggregate=sampling_cfg.get('aggregate', 'max')
        )
    except ValueError as e:
        raise ConfigurationError(str(e))

    analyzer = AnalysisService(
        min_score_difference=attack_cfg.get('min_score_difference', 0.5),
        logger=logger
    )

    attack_config = AttackConfig(
        alphabet=str(attack_cfg['alphabet']),
        secret_length=int(attack_cfg['secret_length']),
        pad_symbol=attack_cfg.get('pad_symbol')
    )
    attack_config.validate()

    return TimingAttacker(
        oracle=oracle,
        timing_analyzer=analyzer,
        sampling_policy=sampling_policy,
        config=attack_config,
        logger=logger
    )


def run_attack(config: dict, logger: Logger):
    print(f"\n{'='*60}")
    print("Starting Timing Attack")
    print(f"{'='*60}")
    print(f"Mode: {config['mode']}")
    print(f"Alphabet: {config['attack']['alphabet']}")
    print(f"Length: {config['attack']['secret_length']}")
    print(f"{'='*60}\n")

    oracle = build_oracle(config, logger)
    try:
        attacker = build_attacker(config, oracle, logger)

        start_time = time.time()
        password = attacker.recover()
        elapsed_time = time.time() - start_time
    finally:
        oracle.close()

    print(f"\n{'='*60}")
    print("[+] ATTACK COMPLETE")
    print(f"{'='*60}")
    print(f"Password: {password}")
    print(f"Rounds: {attacker.stats.rounds} | Queries: {attacker.stats.queries}")
    print(f"Time: {elapsed_time:.2f} seconds")
    print(f"{'='*60}\n")

    return password


def test_candidate_menu(config: dict, logger: Logger):
    candidate = input("\nEnter candidate to test: ").strip()
    if not candidate:
        print("Candidate required!")
        return

    oracle = build_oracle(config, logger)
    try:
        result = oracle.query(candidate)
    finally:
        oracle.close()

    print(f"\n{'='*60}")
    if result.accepted:
        print("[+] SUCCESS - Candidate accepted!")
    else:
        print("[-] FAILED - Candidate rejected")
    print(f"Result: {describe(result)}")
    print(f"{'='*60}\n")


def show_menu():
    print(f"\n{'='*60}")
    print("KEYPAD TIMING ATTACK - INTERACTIVE MENU")
    print(f"{'='*60}")
    print("1. Recover Password")
    print("2. Test Candidate")
    print("3. Exit")
    print(f"{'='*60}")


def main(config_path: str = "config/config.yaml"):
    load_dotenv()

    try:
        config = apply_env_overrides(load_config(config_path))
        logger = Logger.from_config(config['logging'])

        while True:
            show_menu()
            choice = input("\nSelect option (1-3): ").strip()

            if choice == '1':
                run_attack(config, logger)
            elif choice == '2':
                test_candidate_menu(config, logger)
            elif choice == '3':
                print("\nExiting...\n")
                break
            else:
                print("\nInvalid option! Please select 1-3.")

        return 0

    except ConfigurationError as e:
        print(f"Configuration error: {str(e)}", file=sys.stderr)
        return 1
    except RecoveryFailed as e:
        print(f"Recovery failed: {str(e)}", file=sys.stderr)
        print("Check the scope threshold and scale before retrying.", file=sys.stderr)
        return 2
    except (TimingOracleUnavailable, MalformedResponse) as e:
        print(f"Timing oracle error: {str(e)}", file=sys.stderr)
        return 2
    except KeypadCrackerException as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\n\nExiting...\n")
        return 0
    except Exception as e:
        print(f"Unexpected error: {str(e)}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 3


if __name__ == "__main__":
    sys.exit(main())
