#!/usr/bin/env python3
"""Web viewer for stored memories - accessible in browser."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from flask import Flask, abort, render_template_string, request

from .config import Config
from .ranking import compute_decay
from .store import RecordStore
from .utils import utcnow

logger = logging.getLogger(__name__)

ITEMS_PER_PAGE = 10


def get_page_links(current: int, total: int) -> list:
    """Generate smart pagination links with ellipsis for gaps."""
    if total <= 7:
        return list(range(1, total + 1))

    links = []
    for p in range(1, total + 1):
        show_page = (
            p <= 3  # First 3 pages
            or p >= total - 2  # Last 3 pages
            or abs(p - current) <= 1  # Pages around current
        )
        if show_page:
            links.append(p)
        elif links[-1] != "...":
            links.append("...")
    return links


HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Memory Viewer</title>
    <style>
        body { font-family: system-ui; max-width: 900px; margin: 0 auto; padding: 20px; background: #1a1a2e; color: #eee; }
        h1 { color: #00d9ff; }
        .header { display: flex; justify-content: space-between; align-items: center; margin-bottom: 20px; flex-wrap: wrap; gap: 10px; }
        .pagination { display: flex; gap: 6px; align-items: center; flex-wrap: wrap; }
        .pagination a, .pagination span { padding: 6px 12px; background: #0f3460; color: #00d9ff; text-decoration: none; border-radius: 5px; display: inline-block; }
        .pagination a:hover { background: #16213e; }
        .pagination span.current { background: #00d9ff; color: #1a1a2e; font-weight: bold; }
        .pagination span.ellipsis { color: #888; background: transparent; }
        .pagination a.disabled { color: #666; pointer-events: none; }
        .memory { background: #16213e; padding: 15px; margin: 10px 0; border-radius: 8px; border-left: 4px solid #00d9ff; }
        .memory.stale { border-left-color: #f39c12; }
        .collection { display: inline-block; padding: 2px 8px; border-radius: 4px; font-size: 12px; font-weight: bold; background: #4a90d9; }
        .tags { margin-top: 8px; }
        .tag { background: #0f3460; padding: 2px 6px; border-radius: 3px; font-size: 11px; margin-right: 5px; }
        .meta { color: #888; font-size: 12px; margin-top: 8px; }
        .search { margin-bottom: 20px; }
        input { padding: 10px; width: 100%; border-radius: 5px; border: none; background: #0f3460; color: #fff; }
    </style>
</head>
<body>
    <div class="header">
        <h1>Memory Viewer</h1>
        <div class="pagination">
            {% if page > 1 %}
            <a href="?page={{ page-1 }}{{ collection_qs }}">← Prev</a>
            {% else %}
            <a class="disabled">← Prev</a>
            {% endif %}

            {% for p in page_links %}
            {% if p == "..." %}
            <span class="ellipsis">...</span>
            {% elif p == page %}
            <span class="current">{{ p }}</span>
            {% else %}
            <a href="?page={{ p }}{{ collection_qs }}">{{ p }}</a>
            {% endif %}
            {% endfor %}

            {% if page < total_pages %}
            <a href="?page={{ page+1 }}{{ collection_qs }}">Next →</a>
            {% else %}
            <a class="disabled">Next →</a>
            {% endif %}
        </div>
    </div>
    <p>{{ total_memories }} memories{% if collection %} in "{{ collection }}"{% endif %} (half-life {{ half_life }} days)</p>
    <div class="search">
        <input type="text" id="search" placeholder="Filter memories..." onkeyup="filterMemories()">
    </div>
    <div id="memories">
        {% for m in memories %}
        <div class="memory{% if m.decay < 0.5 %} stale{% endif %}" data-content="{{ m.content|lower }}">
            <span class="collection">{{ m.collection }}</span>
            <p>{{ m.content }}</p>
            <div class="tags">
                {% for t in m.tags %}
                <span class="tag">{{ t }}</span>
                {% endfor %}
            </div>
            <div class="meta">{{ m.id }} | {{ m.created_at[:19] }} | age {{ m.age }}d | decay {{ m.decay_pct }}%{% if m.validated %} | validated {{ m.validated[:19] }}{% endif %}</div>
        </div>
        {% endfor %}
    </div>
    <script>
        function filterMemories() {
            const q = document.getElementById('search').value.toLowerCase();
            document.querySelectorAll('.memory').forEach(el => {
                el.style.display = el.dataset.content.includes(q) ? 'block' : 'none';
            });
        }
    </script>
</body>
</html>
"""


def create_app(store: RecordStore, half_life_days: float = 90.0) -> Flask:
    """Flask app listing the memories in store, newest first."""
    app = Flask(__name__)

    @app.route("/")
    def index():
        collection = request.args.get("collection") or None
        page = max(request.args.get("page", 1, type=int), 1)

        memories, error = store.list(collection)
        if error:
            logger.error("Viewer failed to list memories: %s", error.reason)
            abort(500, description=error.reason)

        now = utcnow()
        rows = []
        for m in memories:
            age_days, decay = compute_decay(m.reference_time, now, half_life_days)
            data = m.to_dict()
            data.update(
                tags=m.tags,
                validated=data["last_validated_at"],
                age=round(age_days),
                decay=decay,
                decay_pct=round(decay * 100),
            )
            rows.append(data)

        total = len(rows)
        start = (page - 1) * ITEMS_PER_PAGE
        total_pages = (total + ITEMS_PER_PAGE - 1) // ITEMS_PER_PAGE

        return render_template_string(
            HTML,
            memories=rows[start : start + ITEMS_PER_PAGE],
            page=page,
            total_pages=total_pages,
            total_memories=total,
            page_links=get_page_links(page, total_pages),
            collection=collection,
            collection_qs=f"&{urlencode({'collection': collection})}" if collection else "",
            half_life=f"{half_life_days:g}",
        )

    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[semantic-memory-viewer] %(message)s")
    config = Config.from_env()
    app = create_app(RecordStore.from_config(config), config.decay_half_life_days)
    print("Open http://localhost:5000 in your browser")
    app.run(port=5000)


if __name__ == "__main__":
    main()
