"""Builders for on-disk test inputs: PReg buffers and ADMX/ADML documents."""

import struct


ADMX_NS = "http://schemas.microsoft.com/GroupPolicy/2006/07/PolicyDefinitions"

CHROME_ADMX = f"""<?xml version="1.0" encoding="utf-8"?>
<policyDefinitions xmlns="{ADMX_NS}" revision="1.0" schemaVersion="1.0">
  <categories>
    <category name="googlechrome" displayName="$(string.googlechrome)"/>
  </categories>
  <policies>
    <policy name="DefaultSearchProviderEnabled" class="Both" displayName="$(string.DefaultSearchProviderEnabled)"
            key="Software\\Policies\\Google\\Chrome" valueName="DefaultSearchProviderEnabled">
      <parentCategory ref="googlechrome"/>
    </policy>
    <policy name="HomepageLocation" class="User" displayName="$(string.HomepageLocation)"
            key="Software\\Policies\\Google\\Chrome">
      <parentCategory ref="googlechrome"/>
      <elements>
        <text id="HomepageLocation" valueName="HomepageLocation"/>
      </elements>
    </policy>
  </policies>
</policyDefinitions>
"""

CHROME_ADML = """<?xml version="1.0" encoding="utf-8"?>
<policyDefinitionResources revision="1.0" schemaVersion="1.0">
  <resources>
    <stringTable>
      <string id="googlechrome">Google Chrome</string>
      <string id="DefaultSearchProviderEnabled">Enable the default search provider</string>
      <string id="HomepageLocation">Configure the home page URL</string>
    </stringTable>
  </resources>
</policyDefinitionResources>
"""

WU_ADMX = f"""<?xml version="1.0" encoding="utf-8"?>
<policyDefinitions xmlns="{ADMX_NS}" revision="1.0" schemaVersion="1.0">
  <policies>
    <policy name="AutoUpdateCfg" class="Machine" displayName="$(string.AutoUpdateCfg_Title)"
            key="Software\\Policies\\Microsoft\\Windows\\WindowsUpdate\\AU" valueName="NoAutoUpdate">
      <parentCategory ref="WindowsUpdateCat"/>
    </policy>
  </policies>
</policyDefinitions>
"""

WU_ADML = """<?xml version="1.0" encoding="utf-8"?>
<policyDefinitionResources revision="1.0" schemaVersion="1.0">
  <resources>
    <stringTable>
      <string id="AutoUpdateCfg_Title">Configure Automatic Updates</string>
    </stringTable>
  </resources>
</policyDefinitionResources>
"""

CATEGORIES_ADMX = f"""<?xml version="1.0" encoding="utf-8"?>
<policyDefinitions xmlns="{ADMX_NS}" revision="1.0" schemaVersion="1.0">
  <categories>
    <category name="WindowsComponents" displayName="$(string.WindowsComponents)"/>
  </categories>
</policyDefinitions>
"""


def encode_entry(key, value_name, value_type, data):
    def wstr(s):
        return s.encode("utf-16-le", errors="surrogatepass") + b"\x00\x00"

    sep = ";".encode("utf-16-le")
    return (
        "[".encode("utf-16-le")
        + wstr(key)
        + sep
        + wstr(value_name)
        + sep
        + struct.pack("<I", value_type)
        + sep
        + struct.pack("<I", len(data))
        + sep
        + data
        + "]".encode("utf-16-le")
    )


def encode_preg(entries, version=1, signature=b"PReg"):
    return signature + struct.pack("<I", version) + b"".join(encode_entry(*e) for e in entries)


