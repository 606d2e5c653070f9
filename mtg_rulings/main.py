import sys
import argparse
import logging

from mtg_rulings import services
from mtg_rulings.config import API_HOST, API_PORT, UPDATE_CONFIG, get_config, validate_config
from mtg_rulings.database_update import DatabaseUpdateScheduler

logger = logging.getLogger("Main")


def configure_logging(level=None):
    """Set up root logging; the level defaults to the one for the current ENVIRONMENT"""
    logging_config = get_config()["LOGGING"]
    logging.basicConfig(
        level=getattr(logging, (level or logging_config["LEVEL"]).upper(), logging.INFO),
        format=logging_config["FORMAT"]
    )


def run_database_update(force):
    logger.info("Running database update")
    result = services.get_database_updater().update_card_database(force=force)

    if result.get('success', False):
        logger.info(f"Database update completed: {result['message']}")
    else:
        logger.error(f"Database update failed: {result['message']}")
    return result


def run_rules_update(rules_file=None):
    updater = services.get_rules_updater()

    if rules_file:
        logger.info(f"Loading comprehensive rules from {rules_file}")
        try:
            count = updater.update_rules_from_file(rules_file)
        except Exception as e:
            logger.error(f"Rules update failed: {e}")
            return {"success": False, "message": str(e)}
        logger.info(f"Loaded {count} rules")
        return {"success": True, "message": f"Loaded {count} rules"}

    logger.info("Updating comprehensive rules from the official source")
    result = updater.update_rules_from_wotc()
    log = logger.info if result.get('success', False) else logger.error
    log(f"Rules update: {result['message']}")
    return result


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(description="MTG card database, rules and rulings API")
    parser.add_argument("--server", action="store_true", help="Run API server")
    parser.add_argument("--update-database", action="store_true", help="Refresh cards and rules once")
    parser.add_argument("--force", action="store_true", help="Refresh even if the data is recent")
    parser.add_argument("--update-rules", action="store_true", help="Refresh the comprehensive rules only")
    parser.add_argument("--rules-file", type=str, help="Load rules from this file instead of downloading")
    parser.add_argument("--host", type=str, default=API_HOST, help="API server host")
    parser.add_argument("--port", type=int, default=API_PORT, help="API server port")
    parser.add_argument("--no-scheduler", action="store_true", help="Do not refresh the database periodically")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level")

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        validate_config()
    except ValueError as e:
        logger.error(str(e))
        return 1

    # If no args provided, run the server
    if not (args.update_database or args.update_rules or args.rules_file or args.server):
        args.server = True

    exit_code = 0

    if args.update_rules or args.rules_file:
        result = run_rules_update(args.rules_file)
        if not result.get('success', False):
            exit_code = 1

    if args.update_database:
        result = run_database_update(args.force)
        if not result.get('success', False):
            exit_code = 1

    if args.server:
        # Imported here so CLI-only runs do not build the Flask app
        from mtg_rulings.api_server import run_server

        scheduler = None
        if not args.no_scheduler:
            scheduler = DatabaseUpdateScheduler(
                services.get_database_updater(),
                interval_hours=UPDATE_CONFIG["INTERVAL_HOURS"],
                run_on_start=UPDATE_CONFIG["RUN_ON_START"]
            )
            services.set_instance("scheduler", scheduler)
            scheduler.start()

        logger.info(f"Starting API server on {args.host}:{args.port}")
        try:
            run_server(host=args.host, port=args.port)
        finally:
            if scheduler is not None:
                scheduler.stop()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
