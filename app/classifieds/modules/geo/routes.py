from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.classifieds.modules.geo.nominatim_client import GeocodingError
from app.classifieds.modules.geo.service import client_from_config, point_in_city_radius, simplify_place
from app.classifieds.rbac import require_login

bp = Blueprint("geo", __name__)


def _client():
    return client_from_config(current_app.config, request.headers.get("Accept-Language"))


@bp.get("/search")
@require_login
def geo_search():
    q = (request.args.get("q") or "").strip()
    if not q:
        return jsonify({"error": "q is required"}), 400
    try:
        limit = int(request.args.get("limit") or 10)
    except ValueError:
        return jsonify({"error": "limit must be 1..10"}), 400
    if not 1 <= limit <= 10:
        return jsonify({"error": "limit must be 1..10"}), 400

    user = g.current_user
    city = (request.args.get("city") or "").strip() or (user.city.name if user.city else None)
    try:
        results = _client().search(q, city=city, limit=limit)
    except GeocodingError as e:
        current_app.logger.warning("Geocoder search failed: %s", e)
        return jsonify({"error": "Geocoding service unavailable"}), 502
    places = [simplify_place(r) for r in results]
    if user.city:
        for p in places:
            p["in_city"] = p["lat"] is not None and point_in_city_radius(p["lat"], p["lng"], user.city)
    return jsonify({"results": places})


@bp.get("/reverse")
@require_login
def geo_reverse():
    try:
        lat = float(request.args.get("lat") or "")
        lng = float(request.args.get("lng") or request.args.get("lon") or "")
    except ValueError:
        return jsonify({"error": "lat and lng are required"}), 400
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        return jsonify({"error": "Coordinates out of range"}), 400
    try:
        result = _client().reverse(lat, lng)
    except GeocodingError as e:
        current_app.logger.warning("Geocoder reverse failed: %s", e)
        return jsonify({"error": "Geocoding service unavailable"}), 502
    place = simplify_place(result) if result else None
    user = g.current_user
    in_city = point_in_city_radius(lat, lng, user.city) if user.city else None
    return jsonify({"result": place, "in_city": in_city})
