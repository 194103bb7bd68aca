# Overview: Flask API routes for cashier work sessions; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context
from ..services import work_session_service
from ..services.branch_service import resolve_branch_id, resolve_business_id
from ..services.work_session_service import WorkSessionStateError
from ..validation import NotFoundError, ValidationError


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def _context_branch(branch_id: str | None = None) -> str:
    business_id = resolve_business_id(g.ctx.user_id)
    return resolve_branch_id(business_id, branch_id or g.ctx.branch_id)


def _owned_session(session_id: str):
    session = work_session_service.get_session(session_id)
    if session.user_id != g.ctx.user_id:
        raise work_session_service.WorkSessionNotFoundError(f"Session {session_id} not found")
    return session


@sessions_bp.post("/start")
@require_context
def start_session_route():
    """Open (or return the already open) session of the caller in a branch."""
    data = request.get_json(silent=True) or {}
    try:
        branch_id = _context_branch(data.get("branch_id"))
        session = work_session_service.start_session(g.ctx.user_id, branch_id)
        return jsonify({"session": session.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to start session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/close")
@require_context
def close_session_route():
    """
    Close the caller's open session in a branch, or all of them when
    neither the body nor the context names a branch.
    """
    data = request.get_json(silent=True) or {}
    try:
        branch_id = data.get("branch_id") or g.ctx.branch_id
        if branch_id:
            branch_id = _context_branch(branch_id)
        closed = work_session_service.close_session(g.ctx.user_id, branch_id)
        return jsonify({"closed": closed}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to close session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/active")
@require_context
def active_session_route():
    try:
        branch_id = _context_branch(request.args.get("branch_id"))
        session = work_session_service.get_active_session(g.ctx.user_id, branch_id)
        return jsonify({"session": session.to_dict() if session else None}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get active session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/active/sales")
@require_context
def active_session_sales_route():
    try:
        branch_id = _context_branch(request.args.get("branch_id"))
        sales = work_session_service.get_session_sales(g.ctx.user_id, branch_id)
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list session sales")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/")
@require_context
def list_sessions_route():
    """Query params: branch_id, open_only (default false). Lists the caller's sessions."""
    open_only = request.args.get("open_only", "false").lower() == "true"
    try:
        sessions = work_session_service.list_sessions(
            user_id=g.ctx.user_id,
            branch_id=request.args.get("branch_id"),
            open_only=open_only,
        )
        return jsonify({"items": [s.to_dict() for s in sessions], "count": len(sessions)}), 200
    except Exception:
        current_app.logger.exception("Failed to list sessions")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/<session_id>/close")
@require_context
def close_session_by_id_route(session_id: str):
    try:
        _owned_session(session_id)
        session = work_session_service.close_session_by_id(session_id)
        return jsonify({"session": session.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to close session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.delete("/<session_id>")
@require_context
def delete_session_route(session_id: str):
    try:
        _owned_session(session_id)
        work_session_service.delete_session(session_id)
        return jsonify({"deleted": True}), 200
    except WorkSessionStateError as e:
        return jsonify({"error": str(e)}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete session")
        return jsonify({"error": "Internal server error"}), 500
