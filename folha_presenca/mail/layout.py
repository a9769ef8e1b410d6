from typing import Optional

_STYLE = """
  body  { font-family: Arial, sans-serif; font-size: 13px; color: #333; margin: 0; padding: 0; }
  .header { background: #ed7520; padding: 14px 24px; }
  .header h2 { color: #fff; margin: 0; font-size: 15px; font-weight: bold; }
  .content { padding: 20px 24px; }
  table { border-collapse: collapse; width: 100%; }
  table th { background: #ed7520; color: #fff; padding: 7px 12px; text-align: left; border: 1px solid #d4641a; }
  table td { padding: 6px 12px; border: 1px solid #eee; }
  .footer { font-size: 11px; color: #999; padding: 10px 24px 16px; border-top: 2px solid #ed7520; margin-top: 20px; }
"""


def build_layout_html(
    title: str,
    content: str,
    internal_footer: bool = False,
    version: Optional[str] = None,
) -> str:
    """
    Shared page for every email the routine sends.
    The footer (with the version/build line) is only shown on internal emails.
    """
    footer = ""
    if internal_footer:
        version_html = f"<br><small>{version}</small>" if version else ""
        footer = (
            "  <div class='footer'>Instituto CRIAP &mdash; envio autom&aacute;tico"
            f"{version_html}</div>\n"
        )

    return f"""<!doctype html>
<html lang="pt">
<head>
  <meta charset="utf-8">
  <title>{title}</title>
<style>{_STYLE}</style>
</head>
<body>
  <div class='header'><h2>{title}</h2></div>
  <div class='content'>
{content}
  </div>
{footer}</body>
</html>"""
