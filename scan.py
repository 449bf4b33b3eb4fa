import asyncio
from bleak import BleakScanner

from vitructrl.core import DEVICE_NAME_PREFIX


async def main():
    """Scan for BLE devices and print them, flagging Vitruvian trainers."""
    print("Scanning for BLE devices...")
    devices = await BleakScanner.discover()
    print(f"\nFound {len(devices)} device(s):\n")
    for d in devices:
        marker = "*" if d.name and d.name.startswith(DEVICE_NAME_PREFIX) else " "
        print(f"{marker} {d}")


if __name__ == "__main__":
    asyncio.run(main())
