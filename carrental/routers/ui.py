"""Server-rendered pages over the JSON API.

Pages read the catalog server-side; anything tied to the signed-in user runs
in the browser against the API with the bearer token kept in localStorage.
"""

from html import escape

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotFoundError
from ..services import bookings as booking_service
from ..services import catalog


router = APIRouter(prefix="/ui", tags=["ui"], include_in_schema=False)

_STYLE = """
body{font-family:system-ui,Arial;margin:0;color:#222} main{padding:16px;max-width:1100px;margin:auto}
nav{display:flex;gap:16px;align-items:center;padding:12px 16px;border-bottom:1px solid #ddd}
nav .grow{flex:1} a{color:#0b5cad;text-decoration:none}
.grid{display:grid;grid-template-columns:repeat(auto-fill,minmax(240px,1fr));gap:12px}
.card{border:1px solid #ddd;border-radius:8px;padding:12px} .card img{width:100%;border-radius:6px}
.badge{padding:2px 8px;border-radius:10px;font-size:12px;border:1px solid}
.CONFIRMED,.yes{color:#0a0;border-color:#0a0} .CANCELLED,.no{color:#c00;border-color:#c00}
table{border-collapse:collapse} td,th{padding:4px 8px;border-bottom:1px solid #eee;text-align:left}
.err{color:#c00} input,button{padding:6px;margin:2px 0}
"""

# Nav reflects auth state; the storage event keeps other tabs in sync
_SESSION_JS = """
function session(){ try { return JSON.parse(localStorage.getItem('carrental.session')||'null'); } catch(e){ return null; } }
function authHeaders(){ const s=session(); return s ? {'Authorization':'Bearer '+s.access_token,'Content-Type':'application/json'} : {'Content-Type':'application/json'}; }
function renderNav(){
  const s=session(); const el=document.getElementById('who');
  el.innerHTML = s ? (esc(s.user.country_code)+' '+esc(s.user.phone)+' <button onclick="signOut()">Sign out</button>') : '<a href="/ui/login">Sign in</a>';
  if (typeof onAuthChange==='function') onAuthChange(s);
}
function signOut(){ localStorage.removeItem('carrental.session'); renderNav(); }
function errText(js){ return (js && js.error) ? js.error.message : 'Request failed'; }
function esc(v){ return (v===null||v===undefined) ? "" : String(v).replace(/&/g,"&amp;").replace(/</g,"&lt;").replace(/>/g,"&gt;").replace(/"/g,"&quot;").replace(/'/g,"&#39;"); }
window.addEventListener('storage', (e)=>{ if(e.key==='carrental.session') renderNav(); });
document.addEventListener('DOMContentLoaded', renderNav);
"""


def _page(title: str, body: str, script: str = "") -> HTMLResponse:
    html = (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        "<meta name='viewport' content='width=device-width, initial-scale=1'>"
        "<title>" + escape(title) + "</title><style>" + _STYLE + "</style></head><body>"
        "<nav><a href='/ui'><b>Car Rental</b></a><a href='/ui/bookings'>My bookings</a>"
        "<span class='grow'></span><span id='who'></span></nav>"
        "<main>" + body + "</main>"
        "<script>" + _SESSION_JS + script + "</script></body></html>"
    )
    return HTMLResponse(html)


@router.get("", response_class=HTMLResponse)
def catalog_page(db: Session = Depends(get_db)):
    busy = catalog.busy_vehicle_ids(db)
    cards = []
    for v in catalog.list_vehicles(db):
        avail = v.id not in busy
        img = f"<img src='{escape(v.image_url)}' alt=''>" if v.image_url else ""
        cards.append(
            f"<div class='card'>{img}<h3><a href='/ui/vehicles/{v.id}'>{escape(v.make)} {escape(v.model)}</a></h3>"
            f"<div>{v.year} &middot; {escape(v.category or '')} &middot; {v.seats or '-'} seats</div>"
            f"<div><b>${v.price_per_day}</b> / day "
            f"<span class='badge {'yes' if avail else 'no'}'>{'Available today' if avail else 'Booked today'}</span></div></div>"
        )
    body = "<h2>Vehicles</h2><div class='grid'>" + ("".join(cards) or "<p>No vehicles yet.</p>") + "</div>"
    return _page("Vehicles", body)


@router.get("/vehicles/{vehicle_id}", response_class=HTMLResponse)
def vehicle_page(vehicle_id: int, db: Session = Depends(get_db)):
    try:
        v = catalog.get_vehicle(db, vehicle_id)
    except NotFoundError:
        return _page("Not found", "<h2>Vehicle not found</h2><a href='/ui'>Back to catalog</a>")
    ranges = booking_service.booked_ranges(db, vehicle_id)
    rows = "".join(f"<tr><td>{b.start_date}</td><td>{b.end_date}</td></tr>" for b in ranges) or "<tr><td colspan='2'>No bookings</td></tr>"
    features = "".join(f"<li>{escape(f)}</li>" for f in v.features)
    img = f"<img src='{escape(v.image_url)}' alt='' style='max-width:480px;width:100%'>" if v.image_url else ""
    body = (
        f"<h2>{escape(v.make)} {escape(v.model)} ({v.year})</h2>{img}"
        f"<p>{escape(v.description or '')}</p>"
        f"<p>{escape(v.fuel_type or '')} &middot; {escape(v.transmission or '')} &middot; {v.seats or '-'} seats</p>"
        f"<ul>{features}</ul>"
        f"<p><b>${v.price_per_day}</b> per day</p>"
        "<h3>Booked dates</h3><table><thead><tr><th>From</th><th>To</th></tr></thead>"
        f"<tbody>{rows}</tbody></table>"
        "<h3>Book this vehicle</h3>"
        "<div id='form'><label>From <input type='date' id='start'></label> "
        "<label>To <input type='date' id='end'></label> "
        "<span id='quote'></span><br><button onclick='book()'>Book</button></div>"
        "<p id='msg'></p>"
    )
    script = (
        f"const VEHICLE_ID={v.id}; const PRICE={float(v.price_per_day)};"
        """
function days(){ const s=document.getElementById('start').value, e=document.getElementById('end').value;
  if(!s||!e) return 0; return Math.round((new Date(e)-new Date(s))/86400000)+1; }
function quote(){ const d=days(); document.getElementById('quote').textContent = d>0 ? (d+' day(s): $'+(d*PRICE).toFixed(2)) : ''; }
document.getElementById('start').addEventListener('change', quote);
document.getElementById('end').addEventListener('change', quote);
async function book(){
  const msg=document.getElementById('msg'); msg.className='';
  if(!session()){ msg.innerHTML='Please <a href="/ui/login">sign in</a> first.'; return; }
  const d=days(); if(d<=0){ msg.className='err'; msg.textContent='End date must not be before start date.'; return; }
  const body={vehicle_id:VEHICLE_ID,start_date:document.getElementById('start').value,end_date:document.getElementById('end').value,total_price:(d*PRICE).toFixed(2)};
  const r=await fetch('/bookings',{method:'POST',headers:authHeaders(),body:JSON.stringify(body)});
  const js=await r.json();
  if(r.ok){ msg.innerHTML='Booked! <a href="/ui/bookings">See your bookings</a>'; } else { msg.className='err'; msg.textContent=errText(js); }
}
"""
    )
    return _page(f"{v.make} {v.model}", body, script)


@router.get("/login", response_class=HTMLResponse)
def login_page():
    body = (
        "<h2>Sign in</h2>"
        "<div><input id='cc' value='+1' size='5'> <input id='phone' placeholder='10-digit phone' maxlength='10'> "
        "<button onclick='sendCode()'>Send code</button></div>"
        "<div id='step2' style='display:none'><input id='code' placeholder='4-digit code' maxlength='4'> "
        "<input id='name' placeholder='Your name (optional)'> <button onclick='verify()'>Verify</button></div>"
        "<p id='msg'></p>"
    )
    script = """
async function sendCode(){
  const msg=document.getElementById('msg'); msg.className='';
  const r=await fetch('/auth/request_otp',{method:'POST',headers:{'Content-Type':'application/json'},
    body:JSON.stringify({phone:document.getElementById('phone').value,country_code:document.getElementById('cc').value})});
  const js=await r.json();
  if(!r.ok){ msg.className='err'; msg.textContent=errText(js); return; }
  document.getElementById('step2').style.display='block';
  msg.textContent = js.dev_code ? ('Code sent (demo: '+js.dev_code+')') : 'Code sent';
}
async function verify(){
  const msg=document.getElementById('msg'); msg.className='';
  const r=await fetch('/auth/verify_otp',{method:'POST',headers:{'Content-Type':'application/json'},
    body:JSON.stringify({phone:document.getElementById('phone').value,country_code:document.getElementById('cc').value,
      otp:document.getElementById('code').value,name:document.getElementById('name').value||null})});
  const js=await r.json();
  if(!r.ok){ msg.className='err'; msg.textContent=errText(js); return; }
  localStorage.setItem('carrental.session', JSON.stringify(js)); renderNav(); location.href='/ui';
}
"""
    return _page("Sign in", body, script)


@router.get("/bookings", response_class=HTMLResponse)
def bookings_page():
    body = "<h2>My bookings</h2><div id='list'></div><p id='msg'></p>"
    script = """
async function load(){
  const el=document.getElementById('list');
  if(!session()){ el.innerHTML='Please <a href="/ui/login">sign in</a> to see your bookings.'; return; }
  const r=await fetch('/bookings',{headers:authHeaders()}); const js=await r.json();
  if(!r.ok){ el.innerHTML='<span class="err">'+esc(errText(js))+'</span>'; return; }
  if(!js.bookings.length){ el.innerHTML='No bookings yet.'; return; }
  el.innerHTML='<table><thead><tr><th>Vehicle</th><th>From</th><th>To</th><th>Total</th><th>Status</th><th></th></tr></thead><tbody>'+
    js.bookings.map(b=>'<tr><td>'+esc(b.vehicle_make)+' '+esc(b.vehicle_model)+' '+esc(b.vehicle_year)+'</td><td>'+esc(b.start_date)+'</td><td>'+esc(b.end_date)+
      '</td><td>$'+esc(b.total_price)+'</td><td><span class="badge '+esc(b.status)+'">'+esc(b.status)+'</span></td><td>'+
      (b.status==='CONFIRMED' ? '<button onclick="cancelBooking('+Number(b.id)+')">Cancel</button>' : '')+'</td></tr>').join('')+'</tbody></table>';
}
async function cancelBooking(id){
  const r=await fetch('/bookings/'+id+'/cancel',{method:'POST',headers:authHeaders()}); const js=await r.json();
  const msg=document.getElementById('msg'); msg.className = r.ok ? '' : 'err'; msg.textContent = r.ok ? 'Booking cancelled.' : errText(js);
  load();
}
function onAuthChange(){ load(); }
"""
    return _page("My bookings", body, script)
