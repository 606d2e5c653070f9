# mtg_rulings/ruling_endpoints.py - AI rulings endpoints
import logging

from flask import request, jsonify

from mtg_rulings import services

logger = logging.getLogger("RulingEndpoints")

SESSION_HEADER = "X-Session-Id"


def get_json_body():
    """The request's JSON object, or {} for any other body"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_session_id(data=None):
    """Session id from the JSON body, the query string or the X-Session-Id header"""
    data = data or {}
    return data.get('session_id') or request.args.get('session_id') or request.headers.get(SESSION_HEADER)


def load_cards(card_id=None, card_ids=None):
    """Primary card and the other mentioned cards of a rulings question"""
    db = services.get_db()

    primary = db.get_card(card_id) if card_id else None
    mentioned = db.get_cards(card_ids) if isinstance(card_ids, list) and card_ids else []

    # Without an explicit primary card the first mentioned one takes its place
    if primary is None and mentioned:
        primary, mentioned = mentioned[0], mentioned[1:]

    return primary, mentioned


def add_ruling_endpoints(app):
    """Add rulings assistant endpoints to the Flask app"""

    @app.route('/api/rulings/ask', methods=['POST'])
    def ask_ruling():
        data = get_json_body()
        question = (data.get('question') or '').strip()

        if not question:
            return jsonify({"success": False, "error": "Question is required"}), 400

        try:
            card, mentioned = load_cards(data.get('card_id'), data.get('card_ids'))
            session = services.get_conversation_store().get_or_create(get_session_id(data))

            answer = services.get_ruling_assistant().ask(session, question, card, mentioned)

            response = jsonify({"role": "assistant", "content": answer, "session_id": session.session_id})
            response.headers[SESSION_HEADER] = session.session_id
            return response
        except Exception as e:
            logger.error(f"Error getting ruling: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route('/api/rulings/conversation', methods=['GET'])
    def get_conversation():
        session_id = get_session_id()
        session = services.get_conversation_store().get(session_id) if session_id else None

        return jsonify({
            "session_id": session_id,
            "messages": session.to_list() if session else []
        })

    @app.route('/api/rulings/new-conversation', methods=['POST'])
    def new_conversation():
        data = get_json_body()
        session = services.get_conversation_store().reset(get_session_id(data))

        response = jsonify({"message": "New conversation started", "session_id": session.session_id})
        response.headers[SESSION_HEADER] = session.session_id
        return response

    @app.route('/api/rules/ai-interpret', methods=['POST'])
    def ai_interpret():
        """One-off rules interpretation with no conversation history"""
        data = get_json_body()
        question = (data.get('question') or '').strip()

        if not question:
            return jsonify({"success": False, "error": "Question is required"}), 400

        try:
            card, _ = load_cards(data.get('card_id'))
            answer = services.get_ruling_assistant().get_card_ruling(question, card, [], [])
            return jsonify({"answer": answer, "card_used": card['name'] if card else None})
        except Exception as e:
            logger.error(f"Error getting AI rule interpretation: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    return app
