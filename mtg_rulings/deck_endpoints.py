# mtg_rulings/deck_endpoints.py - Saved deck and deck analysis endpoints
import logging

from flask import request, jsonify

from mtg_rulings import services
from mtg_rulings.config import CARD_DATA_CONFIG
from mtg_rulings.card_search import ensure_image_url
from mtg_rulings.ruling_endpoints import get_json_body
from mtg_rulings.deck_service import (
    FORMATS, DeckAccessError, DeckValidationError, resolve_format, list_formats,
    parse_deck_text, calculate_deck_stats, validate_deck
)

logger = logging.getLogger("DeckEndpoints")

USER_HEADER = "X-User-Id"


def get_user_id(data=None):
    data = data or {}
    return data.get('user_id') or request.args.get('user_id') or request.headers.get(USER_HEADER)


def attach_card_details(entries):
    """Merge stored card fields into {"card_id", "quantity"} deck entries"""
    card_ids = [entry['card_id'] for entry in entries if entry.get('card_id')]
    cards = {card['id']: card for card in services.get_db().get_cards(card_ids)}

    detailed = []
    for entry in entries:
        card = cards.get(entry.get('card_id'), {})
        detailed.append(dict(card, **entry))
    return detailed


def add_deck_endpoints(app):
    """Add deck endpoints to the Flask app"""

    def save(deck_id=None):
        data = get_json_body()
        try:
            deck = services.get_deck_service().save_deck(get_user_id(data), data, deck_id=deck_id)
            return jsonify({"success": True, "deck": deck})
        except DeckValidationError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        except DeckAccessError as e:
            return jsonify({"success": False, "error": str(e)}), 403
        except KeyError:
            return jsonify({"success": False, "error": "Deck not found"}), 404
        except Exception as e:
            logger.error(f"Error saving deck: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route('/api/decks', methods=['POST'])
    def create_deck():
        data = get_json_body()
        return save(data.get('id'))

    @app.route('/api/decks/<deck_id>', methods=['PUT'])
    def update_deck(deck_id):
        return save(deck_id)

    @app.route('/api/decks', methods=['GET'])
    def list_decks():
        user_id = get_user_id()
        if not user_id:
            return jsonify({"success": False, "error": "user_id is required"}), 400

        try:
            return jsonify(services.get_deck_service().list_user_decks(user_id))
        except Exception as e:
            logger.error(f"Error listing decks: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route('/api/deck/<deck_id>', methods=['GET'])
    def get_deck(deck_id):
        """Public deck view; private decks are only returned to their owner"""
        try:
            deck = services.get_deck_service().get_deck(deck_id, get_user_id())
        except DeckAccessError as e:
            return jsonify({"success": False, "error": str(e)}), 403
        except Exception as e:
            logger.error(f"Error fetching deck: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

        if deck is None:
            return jsonify({"success": False, "error": "Deck not found"}), 404
        return jsonify(deck)

    @app.route('/api/decks/<deck_id>', methods=['DELETE'])
    def delete_deck(deck_id):
        try:
            deleted = services.get_deck_service().delete_deck(deck_id, get_user_id())
        except DeckAccessError as e:
            return jsonify({"success": False, "error": str(e)}), 403
        except Exception as e:
            logger.error(f"Error deleting deck: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

        if not deleted:
            return jsonify({"success": False, "error": "Deck not found"}), 404
        return jsonify({"success": True, "message": f"Deck {deck_id} deleted"})

    @app.route('/api/formats', methods=['GET'])
    def get_formats():
        return jsonify(list_formats())

    @app.route('/api/formats/<format_name>/cards', methods=['GET'])
    def get_format_cards(format_name):
        """Cards legal in a format: name matches when query is given, otherwise one page by name"""
        resolved = resolve_format(format_name)
        if resolved is None:
            return jsonify({"success": False, "error": f"Unknown format: {format_name}"}), 400

        legality = FORMATS[resolved]["legality"]
        query = request.args.get('query', '')
        page = max(1, request.args.get('page', 1, type=int))
        page_size = min(max(1, request.args.get('pageSize', CARD_DATA_CONFIG["FORMAT_PAGE_SIZE"], type=int)),
                        CARD_DATA_CONFIG["MAX_FORMAT_PAGE_SIZE"])

        try:
            db = services.get_db()
            if query:
                filters = {"format": legality} if legality else {}
                cards = db.find_cards(query, filters, limit=CARD_DATA_CONFIG["FIND_CARDS_LIMIT"])
            else:
                cards = db.get_cards_by_format(legality, page, page_size)
            return jsonify([ensure_image_url(card) for card in cards])
        except Exception as e:
            logger.error(f"Error fetching {resolved} cards: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route('/api/decks/analyze', methods=['POST'])
    def analyze_deck():
        """Statistics and format violations of an unsaved deck"""
        data = get_json_body()
        format_name = data.get('format', 'Standard')

        if format_name not in FORMATS:
            return jsonify({"success": False, "error": f"Unknown format: {format_name}"}), 400

        try:
            deck_cards = attach_card_details(data.get('deck_data', []))
            sideboard = attach_card_details(data.get('sideboard_data', []))
            errors = validate_deck(format_name, deck_cards, sideboard, data.get('commander'))

            return jsonify({
                "success": True,
                "format": format_name,
                "stats": calculate_deck_stats(deck_cards),
                "valid": not errors,
                "errors": errors
            })
        except Exception as e:
            logger.error(f"Error analyzing deck: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route('/api/decks/parse', methods=['POST'])
    def parse_deck():
        """Read a text decklist and match its cards against the database"""
        data = get_json_body()
        text = data.get('text', '')

        if not text.strip():
            return jsonify({"success": False, "error": "Deck text is required"}), 400

        try:
            parsed = parse_deck_text(text)
            deck_service = services.get_deck_service()

            result = {"success": True, "unparsed": parsed["unparsed"], "missing": []}
            for section in ("commander", "maindeck", "sideboard"):
                resolved = deck_service.resolve_cards(parsed[section])
                result[section] = resolved["cards"]
                result["missing"].extend(resolved["missing"])

            return jsonify(result)
        except Exception as e:
            logger.error(f"Error parsing deck: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    return app
