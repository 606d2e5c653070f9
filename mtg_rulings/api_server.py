# mtg_rulings/api_server.py - Flask API for cards, rules, rulings and decks
import logging
from datetime import datetime, timezone

from flask import Flask, request, jsonify
from flask_cors import CORS

from mtg_rulings import services
from mtg_rulings.config import API_HOST, API_PORT, CARD_DATA_CONFIG, UPDATE_CONFIG
from mtg_rulings.card_search import prioritize_search_results, ensure_image_url
from mtg_rulings.database_update import UPDATE_IN_PROGRESS_MESSAGE
from mtg_rulings.ruling_endpoints import add_ruling_endpoints, get_json_body
from mtg_rulings.deck_endpoints import add_deck_endpoints

# Initialize logger
logger = logging.getLogger("APIServer")

# Create Flask app
app = Flask(__name__)
CORS(app)  # Enable CORS for all routes


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    db_status = services.get_db().get_status()

    updater = services.get_database_updater()
    scheduler = services.get_instance("scheduler")

    return jsonify({
        "status": "ok",
        "database": db_status,
        "updater": {
            "updating": updater.is_updating,
            "scheduler_running": bool(scheduler and scheduler.is_running)
        },
        "conversations": len(services.get_conversation_store())
    })

# ========== DATABASE ENDPOINTS ==========

@app.route('/api/config/database', methods=['POST'])
def set_database_config():
    """Set database credentials"""
    data = get_json_body()

    if not data:
        return jsonify({"success": False, "error": "No data provided"}), 400

    url = data.get('url')
    key = data.get('key')

    if not url or not key:
        return jsonify({"success": False, "error": "URL and key are required"}), 400

    client = services.get_db().set_credentials(url, key)

    if client is not None:
        return jsonify({"success": True, "message": "Database credentials updated"})
    else:
        return jsonify({"success": False, "error": "Failed to connect with provided credentials"}), 400


@app.route('/api/metadata', methods=['GET'])
def get_metadata():
    """Card database metadata, created with the current card count on first request"""
    db = services.get_db()
    try:
        metadata = db.get_metadata(UPDATE_CONFIG["METADATA_ID"])
        if metadata is None:
            metadata = {
                "id": UPDATE_CONFIG["METADATA_ID"],
                "last_updated": datetime.now(timezone.utc).isoformat(),
                "total_cards": db.get_card_count(),
                "description": "Initial database metadata"
            }
            db.upsert_metadata(metadata)
        return jsonify(metadata)
    except Exception as e:
        logger.error(f"Error fetching database metadata: {e}")
        return jsonify({"success": False, "error": str(e)}), 500

# ========== ADMIN ENDPOINTS ==========

@app.route('/api/admin/update-database', methods=['POST'])
def update_database():
    """Run a card and rules refresh now. force skips the 24 hour freshness check."""
    data = get_json_body()
    force = bool(data.get('force', False))

    result = services.get_database_updater().update_card_database(force=force)

    if result.get('success', False):
        return jsonify(result)
    if result.get('message') == UPDATE_IN_PROGRESS_MESSAGE:
        return jsonify(result), 409
    return jsonify(result), 500


@app.route('/api/admin/complete-card-database-update', methods=['POST'])
def complete_card_database_update():
    """Reload every card from Scryfall without touching the rules or metadata"""
    data = get_json_body()

    result = services.get_card_loader().complete_card_database_update(
        force_download=bool(data.get('force_download', False))
    )

    if result.get('success', False):
        return jsonify(result)
    else:
        return jsonify(result), 500

# ========== RULES ENDPOINTS ==========

@app.route('/api/rules/update', methods=['POST'])
def update_rules_from_file():
    """Load the bundled comprehensive rules file"""
    try:
        rule_count = services.get_rules_updater().update_rules_from_file()
        return jsonify({
            "success": True,
            "message": "Comprehensive rules updated successfully",
            "rule_count": rule_count
        })
    except FileNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except Exception as e:
        logger.error(f"Error updating rules: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/api/rules/update-latest', methods=['POST'])
def update_rules_latest():
    """Fetch the current rulebook from Wizards of the Coast, at most once a week"""
    result = services.get_rules_updater().update_rules_from_wotc()

    if result.get('success', False):
        return jsonify(result)
    else:
        return jsonify(result), 500


@app.route('/api/rules', methods=['GET'])
def search_rules():
    query = request.args.get('query', '')
    limit = min(max(1, request.args.get('limit', 50, type=int)), 200)

    try:
        return jsonify(services.get_rules_service().search_rules(query, limit=limit))
    except Exception as e:
        logger.error(f"Error searching rules: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/api/rules/<rule_number>', methods=['GET'])
def get_rule(rule_number):
    rule = services.get_rules_service().get_rule_by_number(rule_number)
    if rule is None:
        return jsonify({"success": False, "error": "Rule not found"}), 404
    return jsonify(rule)


@app.route('/api/admin/rule-test/<rule_number>', methods=['GET'])
def test_rule(rule_number):
    """Check whether a rule made it into the database"""
    rule = services.get_rules_service().get_rule_by_number(rule_number)

    if rule:
        return jsonify({"found": True, "rule": rule, "message": f"Found rule {rule_number}"})
    return jsonify({"found": False, "message": f"Rule {rule_number} not found in database"}), 404

# ========== CARD ENDPOINTS ==========

@app.route('/api/cards/search', methods=['GET'])
def search_cards():
    """Autocomplete search by card name"""
    q = request.args.get('q', '')
    include_all_sets = request.args.get('include_all_sets', 'false').lower() == 'true'

    if len(q) < CARD_DATA_CONFIG["SEARCH_MIN_QUERY_LENGTH"]:
        return jsonify([])

    filters = {}
    if not include_all_sets and request.args.get('set'):
        filters['set'] = request.args['set']

    try:
        cards = services.get_db().find_cards(q, filters, limit=CARD_DATA_CONFIG["FIND_CARDS_LIMIT"])
        results = [ensure_image_url(card) for card in prioritize_search_results(cards, q, include_all_sets)]

        logger.info(f"Card search for '{q}' found {len(cards)} results, returning {len(results)}")
        return jsonify(results)
    except Exception as e:
        logger.error(f"Error searching cards: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/api/cards', methods=['GET'])
def get_cards():
    """Card list with optional name, colour, type, rarity and set filters"""
    query = request.args.get('query', '')
    filters = {
        key: request.args[key]
        for key in ('color', 'type', 'rarity', 'set')
        if request.args.get(key)
    }

    try:
        cards = services.get_db().find_cards(query, filters, limit=CARD_DATA_CONFIG["FIND_CARDS_LIMIT"])
        return jsonify([ensure_image_url(card) for card in cards])
    except Exception as e:
        logger.error(f"Error fetching cards: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/api/sets', methods=['GET'])
def get_sets():
    try:
        return jsonify(services.get_db().get_sets())
    except Exception as e:
        logger.error(f"Error fetching sets: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/api/cards/batch', methods=['POST'])
def get_cards_batch():
    """Fetch several cards at once, e.g. for rendering a saved deck"""
    data = get_json_body()
    card_ids = data.get('card_ids')

    if not isinstance(card_ids, list):
        return jsonify({"success": False, "error": "card_ids must be an array"}), 400

    cards = services.get_db().get_cards(card_ids)
    return jsonify([ensure_image_url(card) for card in cards])


@app.route('/api/cards/resolve-names', methods=['POST'])
def resolve_card_names():
    data = get_json_body()
    card_ids = data.get('card_ids')

    if not isinstance(card_ids, list):
        return jsonify({"success": False, "error": "card_ids must be an array"}), 400

    names = {card['id']: card['name'] for card in services.get_db().get_cards(card_ids)}

    # Unknown ids are shown as their slug with spaces
    return jsonify([
        {"id": card_id, "name": names.get(card_id, str(card_id).replace('-', ' '))}
        for card_id in card_ids
    ])


@app.route('/api/cards/<card_id>', methods=['GET'])
def get_card(card_id):
    card = services.get_db().get_card(card_id)
    if card is None:
        return jsonify({"success": False, "error": "Card not found"}), 404
    return jsonify(ensure_image_url(card))


@app.route('/api/repair-rarities', methods=['POST'])
def repair_rarities():
    """Fix one card, cards matching a query, a batch, or report rarity issues"""
    data = get_json_body()
    repair = services.get_rarity_repair()

    try:
        if data.get('batch_process'):
            batch_size = int(data.get('batch_size') or 500)
            result = repair.fix_missing_rarities(batch_size)
            return jsonify({
                "success": True,
                "message": f"Batch processed {result['processed']} cards with missing rarity information",
                "result": result
            })

        if data.get('card_id'):
            card_id = data['card_id']
            if repair.fix_card_by_id(card_id):
                return jsonify({"success": True, "message": f"Fixed rarity for card {card_id}"})
            return jsonify({"success": False, "message": f"Card {card_id} rarity already correct or card not found"})

        if data.get('query'):
            fixed = repair.fix_rarity_for_query(data['query'])
            return jsonify({
                "success": True,
                "message": f"Checked and fixed rarities for {fixed} cards matching \"{data['query']}\""
            })

        issues = repair.scan_for_rarity_issues()
        return jsonify({
            "success": True,
            "missing_rarity_count": issues["missing_rarity"],
            "sample_cards": {
                rarity: issues[f"{rarity}_card_ids"]
                for rarity in ("common", "uncommon", "rare", "mythic")
            }
        })
    except Exception as e:
        logger.error(f"Error repairing card rarities: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


add_ruling_endpoints(app)
add_deck_endpoints(app)


def run_server(host=API_HOST, port=API_PORT, debug=False):
    """Run the API server"""
    app.run(host=host, port=port, debug=debug)

if __name__ == "__main__":
    run_server()
