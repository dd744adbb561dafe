from __future__ import annotations

import json
from dataclasses import dataclass
from html import escape
from urllib.parse import quote

from assistant_chat_proxy.config_store import ConfigStore

NOT_FOUND_MESSAGE = "Configuration for this assistant could not be found."

# Bootstrap served at /embed.js. It takes its configId and baseUrl from the
# mount() call in the snippet instead of inspecting its own <script> tag.
EMBED_SCRIPT = """\
(function () {
  var BUTTON_ID = 'chatbot-bubble-button';
  var CONTAINER_ID = 'chatbot-iframe-container';

  var chatIcon = '<svg xmlns="http://www.w3.org/2000/svg" width="24" height="24" viewBox="0 0 24 24" fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" stroke-linejoin="round"><path d="M21 15a2 2 0 0 1-2 2H7l-4 4V5a2 2 0 0 1 2-2h14a2 2 0 0 1 2 2z"></path></svg>';
  var closeIcon = '<svg xmlns="http://www.w3.org/2000/svg" width="24" height="24" viewBox="0 0 24 24" fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" stroke-linejoin="round"><line x1="18" y1="6" x2="6" y2="18"></line><line x1="6" y1="6" x2="18" y2="18"></line></svg>';

  var css = [
    '#' + BUTTON_ID + ' { position: fixed; bottom: 20px; right: 20px; width: 60px; height: 60px;',
    '  background-color: #007bff; color: white; border-radius: 50%; display: flex;',
    '  justify-content: center; align-items: center; cursor: pointer;',
    '  box-shadow: 0 4px 8px rgba(0,0,0,0.2); z-index: 9998; transition: transform 0.2s; }',
    '#' + BUTTON_ID + ':hover { transform: scale(1.1); }',
    '#' + CONTAINER_ID + ' { position: fixed; bottom: 90px; right: 20px; width: 370px; height: 70vh;',
    '  max-height: 600px; border-radius: 12px; overflow: hidden;',
    '  box-shadow: 0 8px 24px rgba(0,0,0,0.25); z-index: 9999; }',
    '#' + CONTAINER_ID + ' iframe { width: 100%; height: 100%; border: none; }'
  ].join('\\n');

  function mount(options) {
    if (!options || !options.configId || !options.baseUrl) {
      console.error('Chatbot Error: mount() requires configId and baseUrl.');
      return;
    }
    if (document.getElementById(BUTTON_ID)) {
      return;
    }
    var base = options.baseUrl.replace(/\\/+$/, '');

    var button = document.createElement('div');
    button.id = BUTTON_ID;
    button.innerHTML = chatIcon;

    var container = document.createElement('div');
    container.id = CONTAINER_ID;
    container.style.display = 'none';

    var iframe = document.createElement('iframe');
    iframe.src = base + '/chat.html?configId=' + encodeURIComponent(options.configId);
    iframe.title = 'Chat assistant';
    container.appendChild(iframe);

    var style = document.createElement('style');
    style.textContent = css;
    document.head.appendChild(style);
    document.body.appendChild(button);
    document.body.appendChild(container);

    button.addEventListener('click', function () {
      var open = container.style.display !== 'none';
      container.style.display = open ? 'none' : 'block';
      button.innerHTML = open ? chatIcon : closeIcon;
    });
  }

  window.AssistantChatEmbed = { mount: mount };
})();
"""


@dataclass(frozen=True)
class EmbedView:
    config_id: str
    found: bool
    chat_url: str | None = None
    embed_code: str | None = None
    message: str | None = None


def chat_page_url(config_id: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/chat.html?configId={quote(config_id, safe='')}"


def render_embed_snippet(config_id: str, base_url: str) -> str:
    base = base_url.rstrip("/")
    options = json.dumps({"configId": config_id, "baseUrl": base})
    script_src = escape(f"{base}/embed.js", quote=True)
    onload = escape(f"AssistantChatEmbed.mount({options})", quote=True)
    return f'<script src="{script_src}" onload="{onload}" async></script>'


def resolve_embed(store: ConfigStore, config_id: str, base_url: str) -> EmbedView:
    if store.get(config_id) is None:
        return EmbedView(config_id=config_id, found=False, message=NOT_FOUND_MESSAGE)
    return EmbedView(
        config_id=config_id,
        found=True,
        chat_url=chat_page_url(config_id, base_url),
        embed_code=render_embed_snippet(config_id, base_url),
    )
