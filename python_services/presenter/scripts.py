"""JavaScript evaluated inside the notes (presenter view) window.

Every script returns a plain object so results cross the bridge as JSON.
"""

SCRAPE_STATUS = r"""
(function () {
  var result = {};
  var el = document.querySelector('[aria-posinset]');
  if (el) {
    var cur = parseInt(el.getAttribute('aria-posinset'), 10);
    var tot = parseInt(el.getAttribute('aria-setsize'), 10);
    if (!isNaN(cur)) result.current = cur;
    if (!isNaN(tot)) result.total = tot;
  }
  var titleEl = document.querySelector('title');
  if (titleEl) {
    var titleText = titleEl.textContent || '';
    var match = titleText.match(/Presenter view - (.+?) - Google Slides/);
    result.title = match ? match[1] : titleText;
  }
  var timerEls = document.querySelectorAll('div, span');
  for (var i = 0; i < timerEls.length; i++) {
    var text = (timerEls[i].textContent || '').trim();
    var t = text.match(/^(\d{1,2}:\d{2}(?::\d{2})?)$/);
    if (t) { result.timer = t[1]; break; }
  }
  return result;
})()
"""

_SCROLL_NOTES = r"""
(function () {
  var scrollable = null;
  var all = document.querySelectorAll('*');
  for (var i = 0; i < all.length; i++) {
    var style = window.getComputedStyle(all[i]);
    if ((style.overflowY === 'auto' || style.overflowY === 'scroll') &&
        all[i].scrollHeight > all[i].clientHeight) {
      scrollable = all[i];
      break;
    }
  }
  if (!scrollable) {
    if (document.body && document.body.scrollHeight > document.body.clientHeight) {
      scrollable = document.body;
    } else if (document.documentElement &&
               document.documentElement.scrollHeight > document.documentElement.clientHeight) {
      scrollable = document.documentElement;
    }
  }
  if (scrollable) {
    scrollable.scrollBy(0, %(delta)d);
    return { success: true };
  }
  return { success: false, error: 'No scrollable element found' };
})()
"""

_CLICK_BY_TITLE = r"""
(function () {
  var button = document.querySelector('[title="%(title)s"]');
  if (!button) return { success: false, error: 'Button not found' };
  ['mousedown', 'mouseup', 'click'].forEach(function (type) {
    button.dispatchEvent(new MouseEvent(type, { bubbles: true, cancelable: true, view: window, button: 0 }));
  });
  return { success: true };
})()
"""

SPEAKER_NOTES_TEXT = r"""
(function () {
  var body = document.querySelector('div.punch-viewer-speakernotes-text-body-scrollable');
  if (!body) {
    var table = document.querySelector('[class*="punch-viewer-speakernotes"]');
    if (table) body = table.querySelector('div.punch-viewer-speakernotes-text-body-scrollable') || table;
  }
  if (!body) return { success: false, notes: '', error: 'Speaker notes element not found' };
  return { success: true, notes: (body.innerText || body.textContent || '').trim() };
})()
"""

SCROLL_STEP = 150


def scroll_notes(direction: int) -> str:
    """direction: +1 scrolls down, -1 scrolls up."""
    return _SCROLL_NOTES % {"delta": SCROLL_STEP * (1 if direction > 0 else -1)}


def zoom_notes(direction: int) -> str:
    return _CLICK_BY_TITLE % {"title": "Zoom in" if direction > 0 else "Zoom out"}
