from .models import BufferedText, Headers, RelayResponse

LANDING_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta name="description" content="Fetch any web page through this relay.">
  <title>url-relay</title>
  <style>
    html, body { height: 100%; margin: 0; }
    body {
      display: flex;
      align-items: center;
      justify-content: center;
      font-family: system-ui, sans-serif;
      background: #eef2f5;
    }
    .card {
      width: min(32rem, 90vw);
      padding: 2rem;
      border-radius: 8px;
      background: #fff;
      box-shadow: 0 4px 12px rgba(0, 0, 0, 0.15);
    }
    h1 { margin-top: 0; font-size: 1.4rem; color: #2c3e50; }
    input[type=text] {
      box-sizing: border-box;
      width: 100%;
      padding: 0.6rem;
      margin-bottom: 1rem;
      border: 1px solid #ccd;
      border-radius: 4px;
    }
    button {
      width: 100%;
      padding: 0.6rem;
      border: 0;
      border-radius: 4px;
      background: #00796b;
      color: #fff;
      cursor: pointer;
    }
  </style>
</head>
<body>
  <div class="card">
    <h1>url-relay</h1>
    <form id="relay-form">
      <label for="target-url">Target URL</label>
      <input type="text" id="target-url" placeholder="https://example.com/page" required>
      <button type="submit">Go</button>
    </form>
  </div>
  <script>
    document.getElementById('relay-form').addEventListener('submit', function (event) {
      event.preventDefault();
      var target = document.getElementById('target-url').value.trim();
      window.open(window.location.origin + '/' + encodeURIComponent(target), '_blank');
    });
  </script>
</body>
</html>
"""


def landing_page() -> RelayResponse:
    """Response served for the root path."""
    return RelayResponse(
        status_code=200,
        reason='OK',
        headers=Headers([('Content-Type', 'text/html; charset=utf-8')]),
        body=BufferedText(LANDING_PAGE),
    )
